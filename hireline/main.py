"""
FastAPI 主应用入口

招聘流程后端：表单 Webhook 接入与员工操作接口
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.routing import APIRoute
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from loguru import logger

from hireline import __version__
from hireline.core.config import settings
from hireline.core.database import init_db, close_db
from hireline.core.response import success_response
from hireline.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)
from hireline.api import api_router


def custom_generate_unique_id(route: APIRoute) -> str:
    """使用路由函数名作为 operationId"""
    return route.name


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理
    
    启动时初始化数据库，关闭时释放连接
    """
    logger.info(f"启动应用: {settings.app_name}")
    logger.info(f"环境: {settings.app_env}")
    if not settings.webhook_secret:
        if settings.is_development:
            logger.warning("未配置 WEBHOOK_SECRET，开发环境下跳过签名校验")
        else:
            logger.error("未配置 WEBHOOK_SECRET，所有 Webhook 请求都将被拒绝")
    if not settings.mail_enabled:
        logger.info("邮件发送未启用")
    
    await init_db()
    logger.info("数据库初始化完成")
    
    yield
    
    await close_db()
    logger.info("应用已关闭")


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用实例
    """
    app = FastAPI(
        title=settings.app_name,
        description="招聘流程管理 API",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        generate_unique_id_function=custom_generate_unique_id,
    )
    
    # 注册异常处理器
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
    
    # 注册路由
    app.include_router(api_router, prefix="/api/v1")
    
    @app.get("/health", tags=["系统"])
    async def health_check():
        """健康检查接口"""
        return success_response(data={"status": "healthy"})
    
    # 配置 CORS（最后添加，最先执行）
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    return app


app = create_app()
