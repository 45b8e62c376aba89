"""
应聘申请模型模块

Application 是整个系统的核心表：一次候选人对一个岗位的投递，
阶段（current_stage）与状态（status）由流程状态机驱动
"""
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
from sqlalchemy import String, Text, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel
from .enums import Stage, Status

if TYPE_CHECKING:
    from .person import Person
    from .assessment import Assessment
    from .interview import Interview
    from .decision import Decision


class Application(BaseModel):
    """
    应聘申请模型（核心表）
    
    关联关系:
    - N:1 -> Person (候选人拥有申请，撤回时级联删除)
    - 1:N -> Assessment (专业能力测评)
    - 1:N -> Interview (面试)
    - 1:N -> Decision (录用决定，至多一条)
    """
    __tablename__ = "applications"
    
    # ========== 外键关联 ==========
    person_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("persons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="候选人ID"
    )
    position: Mapped[str] = mapped_column(String(200), nullable=False, comment="应聘岗位")
    
    # ========== 状态管理 ==========
    current_stage: Mapped[str] = mapped_column(
        String(40),
        default=Stage.APPLICATION.value,
        nullable=False,
        index=True,
        comment="当前阶段"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=Status.ACTIVE.value,
        nullable=False,
        index=True,
        comment="申请状态"
    )
    
    # ========== 投递材料 ==========
    resume_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    academic_background: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    previous_experience: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_link: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    other_file_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    has_resume: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_academic_bg: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_video_intro: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_previous_exp: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_other_file: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    
    # ========== 表单来源（幂等键） ==========
    submission_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        comment="表单提交ID（唯一，幂等键）"
    )
    response_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    form_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    
    # ========== 协议签署 ==========
    agreement_submission_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        unique=True,
        nullable=True,
        comment="协议表单提交ID（唯一，幂等键）"
    )
    agreement_signed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    agreement_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    
    # ========== 关联关系 ==========
    person: Mapped["Person"] = relationship(
        "Person",
        back_populates="applications",
        lazy="joined",
    )
    assessments: Mapped[List["Assessment"]] = relationship(
        "Assessment",
        back_populates="application",
        cascade="all",
        passive_deletes=True,
    )
    interviews: Mapped[List["Interview"]] = relationship(
        "Interview",
        back_populates="application",
        cascade="all",
        passive_deletes=True,
    )
    decisions: Mapped[List["Decision"]] = relationship(
        "Decision",
        back_populates="application",
        cascade="all",
        passive_deletes=True,
    )
    
    @property
    def missing_fields(self) -> List[str]:
        """声明提交但内容为空的材料"""
        missing = []
        if self.has_resume and not self.resume_url:
            missing.append("Resume")
        if self.has_academic_bg and not self.academic_background:
            missing.append("Academic Background")
        if self.has_video_intro and not self.video_link:
            missing.append("Video Introduction")
        if self.has_previous_exp and not self.previous_experience:
            missing.append("Previous Experience")
        if self.has_other_file and not self.other_file_url:
            missing.append("Other File")
        return missing
    
    def __repr__(self) -> str:
        return f"<Application(id={self.id}, stage={self.current_stage}, status={self.status})>"
