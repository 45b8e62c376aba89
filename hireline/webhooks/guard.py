"""
Webhook 入口守卫

所有 Webhook 路由共用的前置处理（FastAPI 依赖）：
限流 -> 来源校验 -> JSON 解析 -> 结构校验。
任何一步失败都直接返回错误，不进入业务逻辑，也不写审计日志。
"""
import json
from dataclasses import dataclass, field
from typing import Dict, Optional

from fastapi import Depends, Request
from loguru import logger
from pydantic import ValidationError

from hireline.core.config import Settings, get_settings
from hireline.core.exceptions import (
    BadRequestException,
    ForbiddenException,
    RateLimitException,
)
from hireline.core.rate_limiter import SlidingWindowRateLimiter, get_webhook_rate_limiter
from hireline.core.security import sanitize_for_log
from hireline.schemas.webhook import TallyWebhookPayload
from .verify import get_client_ip, verify_webhook


@dataclass
class VerifiedWebhook:
    """通过校验的 Webhook 请求"""
    payload: TallyWebhookPayload
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    rate_limit_headers: Dict[str, str] = field(default_factory=dict)


async def parse_and_verify_webhook(
    request: Request,
    limiter: SlidingWindowRateLimiter = Depends(get_webhook_rate_limiter),
    settings: Settings = Depends(get_settings),
) -> VerifiedWebhook:
    """Webhook 前置处理依赖"""
    client_host = request.client.host if request.client else None
    ip = get_client_ip(request.headers, fallback=client_host)
    
    # 1. 限流（按 路由 + IP 分桶）
    rate = limiter.check(f"{request.url.path}:{ip or 'unknown'}")
    headers = rate.headers
    if not rate.allowed:
        logger.warning(f"[Webhook] 频率超限: {sanitize_for_log(ip)} {request.url.path}")
        raise RateLimitException("Rate limit exceeded", headers=headers)
    
    # 2. 来源校验（需要原始请求体计算签名）
    body = await request.body()
    verification = verify_webhook(body, request.headers, settings, client_host=client_host)
    if not verification.ok:
        logger.error(
            f"[Webhook] 校验失败: {sanitize_for_log(verification.reason)} | Path: {request.url.path}"
        )
        raise ForbiddenException("Webhook verification failed", headers=headers)
    
    # 3. JSON 解析
    try:
        raw = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise BadRequestException("Invalid JSON payload", headers=headers) from None
    
    # 4. 结构校验
    if not isinstance(raw, dict):
        raise BadRequestException("Invalid payload structure", headers=headers)
    try:
        payload = TallyWebhookPayload.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"[Webhook] 载荷结构错误: {sanitize_for_log(e.errors(include_input=False))}")
        raise BadRequestException("Invalid payload structure", headers=headers) from None
    
    return VerifiedWebhook(
        payload=payload,
        ip=verification.ip,
        user_agent=request.headers.get("user-agent"),
        rate_limit_headers=headers,
    )
