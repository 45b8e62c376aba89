"""
统一响应模块

定义标准 API 响应格式
"""
from typing import Any, Optional


def success_response(
    data: Any = None,
    message: str = "操作成功",
    code: int = 200,
    **extra: Any
) -> dict:
    """
    成功响应
    
    extra 中的字段平铺到顶层，供 Webhook 调用方直接读取
    （如幂等重放时的 applicationId / assessmentId）
    """
    body = {
        "success": True,
        "code": code,
        "message": message,
        "data": data
    }
    body.update(extra)
    return body


def error_response(
    message: str = "操作失败",
    code: int = 400,
    data: Any = None
) -> dict:
    """错误响应"""
    return {
        "success": False,
        "code": code,
        "message": message,
        "error": message,
        "data": data
    }


def paged_response(
    items: list,
    total: int,
    limit: int,
    offset: int,
    message: str = "查询成功"
) -> dict:
    """偏移分页响应"""
    return success_response(
        data={
            "items": items,
            "total": total,
            "limit": limit,
            "offset": offset,
        },
        message=message
    )


def merge_headers(*groups: Optional[dict]) -> dict:
    """合并多组响应头，忽略空值"""
    merged: dict = {}
    for group in groups:
        if group:
            merged.update(group)
    return merged
