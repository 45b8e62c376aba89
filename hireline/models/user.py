"""
员工用户模型模块

用户由身份提供方同步（同步逻辑不在本服务内）
"""
from typing import Optional
from sqlalchemy import String, Boolean
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class User(BaseModel):
    """员工用户（面试官 / 招聘经理 / 管理员）"""
    __tablename__ = "users"
    
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_access: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, comment="可访问申请")
    scheduling_link: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True, comment="预约面试链接")
    
    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
