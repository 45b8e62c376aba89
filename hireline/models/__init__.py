"""
数据模型模块

SQLAlchemy 2.0 声明式模型
"""
from .base import BaseModel, TimestampMixin, utcnow
from .enums import (
    Stage, STAGE_ORDER, Status, AssessmentType,
    InterviewOutcome, DecisionType, ActionType,
)
from .person import Person
from .application import Application
from .assessment import Assessment
from .interview import Interview
from .decision import Decision
from .audit_log import AuditLog
from .user import User
from .webhook_receipt import WebhookReceipt

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "utcnow",
    # Enums
    "Stage",
    "STAGE_ORDER",
    "Status",
    "AssessmentType",
    "InterviewOutcome",
    "DecisionType",
    "ActionType",
    # Tables
    "Person",
    "Application",
    "Assessment",
    "Interview",
    "Decision",
    "AuditLog",
    "User",
    "WebhookReceipt",
]
