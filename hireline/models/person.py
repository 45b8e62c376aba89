"""
候选人模型模块
"""
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
from sqlalchemy import String, Boolean, Float, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel

if TYPE_CHECKING:
    from .application import Application
    from .assessment import Assessment


class Person(BaseModel):
    """
    候选人模型
    
    首次投递时按邮箱匹配或创建；一个候选人可以投递多个岗位。
    通用能力测评（GC）结果记录在候选人上，跨申请共享。
    """
    __tablename__ = "persons"
    
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
        comment="邮箱（唯一）"
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    portfolio_link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    education_level: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    respondent_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="表单平台的答题人ID"
    )
    
    # ========== 通用能力测评 ==========
    general_competencies_completed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="是否已完成通用能力测评"
    )
    general_competencies_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    general_competencies_passed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )
    
    # ========== 关联关系 ==========
    applications: Mapped[List["Application"]] = relationship(
        "Application",
        back_populates="person",
        passive_deletes=True,
    )
    assessments: Mapped[List["Assessment"]] = relationship(
        "Assessment",
        back_populates="person",
        passive_deletes=True,
    )
    
    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
    
    def __repr__(self) -> str:
        return f"<Person(id={self.id}, email={self.email})>"
