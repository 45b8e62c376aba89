"""
面试模型模块
"""
from datetime import datetime
from typing import TYPE_CHECKING, Optional
from sqlalchemy import String, Text, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel
from .enums import InterviewOutcome

if TYPE_CHECKING:
    from .application import Application
    from .user import User

_OPEN_INTERVIEW = text("completed_at IS NULL")


class Interview(BaseModel):
    """
    面试模型
    
    每个申请同一时间至多一场未完成的面试（部分唯一索引保证）
    """
    __tablename__ = "interviews"
    __table_args__ = (
        Index(
            "uq_interviews_open_per_application",
            "application_id",
            unique=True,
            sqlite_where=_OPEN_INTERVIEW,
            postgresql_where=_OPEN_INTERVIEW,
        ),
    )
    
    application_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    interviewer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id"),
        nullable=False,
        comment="面试官ID"
    )
    scheduling_link: Mapped[str] = mapped_column(String(1000), nullable=False)
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    outcome: Mapped[str] = mapped_column(
        String(20),
        default=InterviewOutcome.PENDING.value,
        nullable=False,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    
    application: Mapped["Application"] = relationship("Application", back_populates="interviews")
    interviewer: Mapped["User"] = relationship("User", lazy="joined")
    
    def __repr__(self) -> str:
        return f"<Interview(id={self.id}, outcome={self.outcome})>"
