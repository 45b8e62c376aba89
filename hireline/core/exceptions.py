"""
异常处理模块

定义业务异常和全局异常处理器
"""
from typing import Optional

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from loguru import logger

from .response import error_response


class AppException(Exception):
    """应用基础异常"""
    
    def __init__(
        self,
        message: str = "Internal server error",
        code: int = 500,
        data: dict = None,
        headers: Optional[dict] = None
    ):
        self.message = message
        self.code = code
        self.data = data
        self.headers = headers
        super().__init__(self.message)


class NotFoundException(AppException):
    """资源不存在异常"""
    
    def __init__(self, message: str = "Resource not found", headers: Optional[dict] = None):
        super().__init__(message=message, code=404, headers=headers)


class BadRequestException(AppException):
    """请求参数错误异常"""
    
    def __init__(self, message: str = "Bad request", headers: Optional[dict] = None):
        super().__init__(message=message, code=400, headers=headers)


class UnauthorizedException(AppException):
    """未认证异常"""
    
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message=message, code=401)


class ForbiddenException(AppException):
    """无权限 / 校验失败异常"""
    
    def __init__(self, message: str = "Forbidden", headers: Optional[dict] = None):
        super().__init__(message=message, code=403, headers=headers)


class RateLimitException(AppException):
    """请求频率超限异常"""
    
    def __init__(self, message: str = "Rate limit exceeded", headers: Optional[dict] = None):
        super().__init__(message=message, code=429, headers=headers)


class EmailDeliveryError(AppException):
    """员工手动发送的邮件未能送出"""
    
    def __init__(self, message: str = "Failed to send email"):
        super().__init__(message=message, code=502)


class ExtractionError(BadRequestException):
    """表单字段提取失败（必填字段缺失或格式错误）"""
    
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message=message)
        self.field = field


class StageConflictError(BadRequestException):
    """申请所处阶段/状态不满足操作前置条件"""
    
    def __init__(self, message: str, headers: Optional[dict] = None):
        super().__init__(message=message, headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """应用异常处理器"""
    logger.warning(f"AppException: {exc.message} | Path: {request.url.path}")
    return JSONResponse(
        status_code=exc.code,
        content=error_response(message=exc.message, code=exc.code, data=exc.data),
        headers=exc.headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTP 异常处理器"""
    logger.warning(f"HTTPException: {exc.detail} | Path: {request.url.path}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(message=str(exc.detail), code=exc.status_code),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """请求验证异常处理器"""
    errors = exc.errors()
    error_messages = []
    for error in errors:
        loc = " -> ".join(str(l) for l in error["loc"])
        error_messages.append(f"{loc}: {error['msg']}")
    
    message = "; ".join(error_messages)
    logger.warning(f"ValidationError: {message} | Path: {request.url.path}")
    
    return JSONResponse(
        status_code=400,
        content=error_response(
            message=message or "Request validation failed",
            code=400,
            data={"errors": jsonable_encoder(errors)}
        )
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """通用异常处理器：只记录日志，不向调用方暴露内部细节"""
    logger.exception(f"Unhandled Exception: {type(exc).__name__} | Path: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=error_response(message="Internal server error", code=500)
    )
