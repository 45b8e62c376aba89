"""
API v1 路由模块
"""
from . import webhooks, applications

__all__ = [
    "webhooks",
    "applications",
]
