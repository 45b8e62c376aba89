"""
Schema 基类模块
"""
from datetime import datetime
from sqlmodel import SQLModel


class SQLModelBase(SQLModel):
    """
    SQLModel 基类配置
    
    所有 Schema 类都应继承此类
    """
    model_config = {
        "from_attributes": True,
        "populate_by_name": True,
        "str_strip_whitespace": True,
    }


class TimestampResponse(SQLModelBase):
    """带时间戳的响应基类"""
    id: str
    created_at: datetime
    updated_at: datetime
