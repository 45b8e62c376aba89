"""
API 路由模块
"""
from fastapi import APIRouter

from .v1 import webhooks, applications

# 创建主路由
api_router = APIRouter()

# 注册各模块路由
api_router.include_router(
    webhooks.router,
    prefix="/webhooks/tally",
    tags=["表单 Webhook"]
)
api_router.include_router(
    applications.router,
    prefix="/applications",
    tags=["应聘申请"]
)
