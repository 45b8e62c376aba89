"""
Webhook 来源校验

- HMAC-SHA256 签名（十六进制，请求头 tally-signature）
- IP 白名单（支持 CIDR）
"""
import hashlib
import hmac
import ipaddress
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from loguru import logger

from hireline.core.config import Settings
from hireline.core.security import sanitize_for_log

SIGNATURE_HEADER = "tally-signature"


@dataclass(frozen=True)
class VerificationResult:
    """校验结果；失败原因只写日志，不返回给调用方"""
    ok: bool
    reason: Optional[str] = None
    ip: Optional[str] = None


def compute_signature(body: bytes, secret: str) -> str:
    """计算请求体签名"""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """常量时间比较签名"""
    if not signature or not secret:
        return False
    try:
        provided = bytes.fromhex(signature.strip())
    except ValueError:
        return False
    expected = bytes.fromhex(compute_signature(body, secret))
    return hmac.compare_digest(provided, expected)


def get_client_ip(headers: Mapping[str, str], fallback: Optional[str] = None) -> Optional[str]:
    """
    获取客户端 IP
    
    依次读取 x-forwarded-for（取第一个）、x-real-ip、cf-connecting-ip，
    都没有时使用连接地址
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = headers.get(header)
        if value:
            return value.strip()
    
    return fallback


def ip_allowed(ip: Optional[str], allowlist: Sequence[str]) -> bool:
    """IP 是否在白名单内；白名单为空表示不限制"""
    if not allowlist:
        return True
    if not ip:
        return False
    
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    
    for entry in allowlist:
        try:
            network = ipaddress.ip_network(entry, strict=False)
        except ValueError:
            logger.warning("忽略无效的白名单条目: {}", sanitize_for_log(entry))
            continue
        if address.version == network.version and address in network:
            return True
    return False


def verify_webhook(
    body: bytes,
    headers: Mapping[str, str],
    settings: Settings,
    client_host: Optional[str] = None,
) -> VerificationResult:
    """
    完整校验：先 IP 白名单，再签名
    
    开发环境且未配置密钥时跳过签名校验；其它环境缺少密钥一律拒绝
    """
    ip = get_client_ip(headers, fallback=client_host)
    
    if not ip_allowed(ip, settings.webhook_ip_allowlist):
        return VerificationResult(ok=False, reason=f"IP not allowed: {ip}", ip=ip)
    
    secret = settings.webhook_secret
    if not secret:
        if settings.is_development:
            return VerificationResult(ok=True, ip=ip)
        return VerificationResult(ok=False, reason="Webhook secret not configured", ip=ip)
    
    signature = headers.get(SIGNATURE_HEADER)
    if not signature:
        return VerificationResult(ok=False, reason=f"Missing {SIGNATURE_HEADER} header", ip=ip)
    
    if not verify_signature(body, signature, secret):
        return VerificationResult(ok=False, reason="Invalid signature", ip=ip)
    
    return VerificationResult(ok=True, ip=ip)
