"""
Schemas 模块

定义 Webhook 载荷与 API 请求/响应的数据验证模型
"""
from .base import SQLModelBase, TimestampResponse
from .webhook import (
    TallyOption,
    TallyFileUpload,
    TallyField,
    TallySubmission,
    TallyWebhookPayload,
    EmptyValue,
    TextValue,
    NumberValue,
    BooleanValue,
    ChoiceValue,
    FileValue,
    FieldValue,
    classify_value,
)
from .application import (
    ScheduleInterviewRequest,
    RescheduleInterviewRequest,
    CompleteInterviewRequest,
    ReviewSCRequest,
    DecisionRequest,
    WithdrawOfferRequest,
    SendEmailRequest,
    PersonBrief,
    AssessmentBrief,
    InterviewBrief,
    DecisionBrief,
    ApplicationResponse,
    ApplicationDetailResponse,
    AuditLogResponse,
)

__all__ = [
    "SQLModelBase",
    "TimestampResponse",
    # Webhook
    "TallyOption",
    "TallyFileUpload",
    "TallyField",
    "TallySubmission",
    "TallyWebhookPayload",
    "EmptyValue",
    "TextValue",
    "NumberValue",
    "BooleanValue",
    "ChoiceValue",
    "FileValue",
    "FieldValue",
    "classify_value",
    # Application
    "ScheduleInterviewRequest",
    "RescheduleInterviewRequest",
    "CompleteInterviewRequest",
    "ReviewSCRequest",
    "DecisionRequest",
    "WithdrawOfferRequest",
    "SendEmailRequest",
    "PersonBrief",
    "AssessmentBrief",
    "InterviewBrief",
    "DecisionBrief",
    "ApplicationResponse",
    "ApplicationDetailResponse",
    "AuditLogResponse",
]
