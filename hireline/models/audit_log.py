"""
审计日志模型模块

只追加，不更新不删除。实体ID仅做引用，不加外键，
申请被撤回删除后日志依然保留
"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from hireline.core.database import Base
from .base import utcnow


class AuditLog(Base):
    """审计日志"""
    __tablename__ = "audit_logs"
    
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    person_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    application_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, comment="操作人ID")
    action: Mapped[str] = mapped_column(Text, nullable=False)
    action_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True, comment="结构化详情")
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    
    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, action_type={self.action_type})>"
