"""
应聘申请相关 Schema

员工操作接口的请求体与响应体
"""
from datetime import datetime
from typing import Any, List, Optional
from pydantic import field_validator
from sqlmodel import Field

from .base import SQLModelBase, TimestampResponse


# ========== 请求体 ==========

class ScheduleInterviewRequest(SQLModelBase):
    """安排面试请求"""
    interviewer_id: Any = Field(default=None, alias="interviewerId")
    scheduled_at: Optional[str] = Field(default=None, alias="scheduledAt")
    notes: Optional[str] = None
    send_email: bool = Field(default=True, alias="sendEmail")


class RescheduleInterviewRequest(SQLModelBase):
    """重新安排面试（更换面试官）请求"""
    interviewer_id: Any = Field(default=None, alias="interviewerId")
    send_email: bool = Field(default=True, alias="sendEmail")


class CompleteInterviewRequest(SQLModelBase):
    """完成面试请求"""
    notes: Any = None
    outcome: Optional[str] = None


class ReviewSCRequest(SQLModelBase):
    """专业能力测评人工审核请求"""
    assessment_id: Any = Field(default=None, alias="assessmentId")
    passed: Any = None


class DecisionRequest(SQLModelBase):
    """录用决定请求"""
    decision: Any = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    send_email: bool = Field(default=True, alias="sendEmail")
    
    @field_validator("decision", mode="before")
    @classmethod
    def normalize_decision(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class WithdrawOfferRequest(SQLModelBase):
    """撤回录用通知请求"""
    reason: Any = None
    send_email: bool = Field(default=True, alias="sendEmail")


class SendEmailRequest(SQLModelBase):
    """手动发送邮件请求"""
    template_name: Any = Field(default=None, alias="templateName")
    reason: Any = None


# ========== 响应体 ==========

class PersonBrief(SQLModelBase):
    """候选人简要信息"""
    id: str
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str] = None
    country: Optional[str] = None
    general_competencies_completed: bool
    general_competencies_score: Optional[float] = None


class AssessmentBrief(SQLModelBase):
    """测评简要信息"""
    id: str
    type: str
    score: Optional[float] = None
    passed: Optional[bool] = None
    threshold: Optional[float] = None
    completed_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None


class InterviewBrief(SQLModelBase):
    """面试简要信息"""
    id: str
    interviewer_id: str
    scheduling_link: str
    scheduled_at: Optional[datetime] = None
    notes: Optional[str] = None
    outcome: str
    completed_at: Optional[datetime] = None
    email_sent_at: Optional[datetime] = None


class DecisionBrief(SQLModelBase):
    """录用决定简要信息"""
    id: str
    decision: str
    reason: Optional[str] = None
    notes: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: datetime


class ApplicationResponse(TimestampResponse):
    """应聘申请响应"""
    person_id: str
    position: str
    current_stage: str
    status: str
    resume_url: Optional[str] = None
    academic_background: Optional[str] = None
    previous_experience: Optional[str] = None
    video_link: Optional[str] = None
    other_file_url: Optional[str] = None
    submission_id: str
    agreement_signed_at: Optional[datetime] = None
    missing_fields: List[str] = Field(default_factory=list)


class ApplicationDetailResponse(ApplicationResponse):
    """应聘申请详情响应（含关联数据）"""
    person: Optional[PersonBrief] = None
    assessments: List[AssessmentBrief] = Field(default_factory=list)
    interviews: List[InterviewBrief] = Field(default_factory=list)
    decision: Optional[DecisionBrief] = None


class AuditLogResponse(SQLModelBase):
    """审计日志响应"""
    id: str
    person_id: Optional[str] = None
    application_id: Optional[str] = None
    user_id: Optional[str] = None
    action: str
    action_type: str
    details: Optional[dict] = None
    created_at: datetime
