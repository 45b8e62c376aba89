"""
测评结果模型模块
"""
from datetime import datetime
from typing import TYPE_CHECKING, Optional
from sqlalchemy import String, Float, Boolean, DateTime, ForeignKey, JSON, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel
from .enums import AssessmentType

if TYPE_CHECKING:
    from .person import Person
    from .application import Application

# 每个申请至多一条待人工审核的专业能力测评
_UNREVIEWED_SC = text(
    f"type = '{AssessmentType.SPECIALIZED_COMPETENCIES.value}' AND passed IS NULL"
)


class Assessment(BaseModel):
    """
    测评结果模型
    
    - 通用能力测评（GC）：挂在候选人上，application_id 为空
    - 专业能力测评（SC）：挂在具体申请上；无分数时 passed 为空，等待人工审核
    """
    __tablename__ = "assessments"
    __table_args__ = (
        Index(
            "uq_assessments_unreviewed_sc",
            "application_id",
            unique=True,
            sqlite_where=_UNREVIEWED_SC,
            postgresql_where=_UNREVIEWED_SC,
        ),
    )
    
    person_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("persons.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    application_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(40), nullable=False, comment="测评类型")
    
    # ========== 成绩 ==========
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    passed: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True, comment="为空表示待审核")
    threshold: Mapped[Optional[float]] = mapped_column(Float, nullable=True, comment="判定所用阈值")
    culture_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    situational_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    digital_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    specialised_competency_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, comment="审核人ID")
    
    # ========== 表单来源 ==========
    submission_id: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        comment="表单提交ID（唯一，幂等键）"
    )
    raw_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True, comment="原始表单数据")
    
    # ========== 关联关系 ==========
    person: Mapped["Person"] = relationship("Person", back_populates="assessments")
    application: Mapped[Optional["Application"]] = relationship(
        "Application",
        back_populates="assessments",
    )
    
    def __repr__(self) -> str:
        return f"<Assessment(id={self.id}, type={self.type}, passed={self.passed})>"
