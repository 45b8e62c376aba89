"""
服务层模块
"""
from .audit import AuditContext, SYSTEM, create_audit_log
from .notifications import (
    NotificationDispatcher,
    NotificationError,
    EmailMessage,
    SendGridTransport,
    get_notifier,
)
from .pipeline import Outcome, PipelineService, advance_stage, change_status, get_pipeline
from .staff import StaffActionService, get_staff_actions

__all__ = [
    # 审计
    "AuditContext",
    "SYSTEM",
    "create_audit_log",
    # 邮件通知
    "NotificationDispatcher",
    "NotificationError",
    "EmailMessage",
    "SendGridTransport",
    "get_notifier",
    # 流程状态机
    "Outcome",
    "PipelineService",
    "advance_stage",
    "change_status",
    "get_pipeline",
    # 员工操作
    "StaffActionService",
    "get_staff_actions",
]
