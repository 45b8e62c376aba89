"""
输入校验与清洗工具

集中处理 UUID / URL 校验、文本清洗和日志脱敏，
供 Webhook 与员工操作接口共用
"""
import re
from typing import Any, Optional
from urllib.parse import urlparse

from .exceptions import BadRequestException

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def is_valid_uuid(value: Any) -> bool:
    """是否为格式正确的 UUID 字符串"""
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


def is_valid_url(value: Any) -> bool:
    """是否为 http/https 协议的合法 URL"""
    if not isinstance(value, str) or not value:
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def sanitize_text(text: Optional[str], max_length: int = 5000) -> Optional[str]:
    """移除空字节并截断长度"""
    if text is None:
        return None
    return text.replace("\0", "")[:max_length]


def sanitize_for_log(value: Any, max_length: int = 200) -> str:
    """日志脱敏：去除控制字符防止日志注入"""
    text = _CONTROL_CHARS.sub(" ", str(value))
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def require_string(value: Any, field_name: str) -> str:
    """校验非空字符串，拒绝数组、数字等真值"""
    if not isinstance(value, str) or not value.strip():
        raise BadRequestException(f"{field_name} is required")
    return value


def require_uuid(value: Any, field_name: str) -> str:
    """校验 UUID 格式"""
    if not is_valid_uuid(value):
        raise BadRequestException(f"Invalid {field_name} format")
    return value
