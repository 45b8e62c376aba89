"""
Webhook 回执模型模块

记录每一次已处理的表单提交，作为跨表的幂等账本。
不加外键：测评被重新测评替换、申请被撤回删除后，回执依然保留
"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from hireline.core.database import Base
from .base import utcnow


class WebhookReceipt(Base):
    """已处理的表单提交"""
    __tablename__ = "webhook_receipts"
    __table_args__ = (
        UniqueConstraint("webhook", "submission_id", name="uq_webhook_receipts_submission"),
    )
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    webhook: Mapped[str] = mapped_column(String(40), nullable=False, comment="Webhook 类型")
    submission_id: Mapped[str] = mapped_column(String(100), nullable=False, comment="表单提交ID")
    entity_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, comment="处理产生的记录ID")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    
    def __repr__(self) -> str:
        return f"<WebhookReceipt(webhook={self.webhook}, submission_id={self.submission_id})>"
