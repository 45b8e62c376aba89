"""
Webhook 来源校验与限流测试
"""
import pytest

from hireline.core.config import Settings
from hireline.core.rate_limiter import SlidingWindowRateLimiter
from hireline.webhooks.verify import (
    SIGNATURE_HEADER,
    compute_signature,
    get_client_ip,
    ip_allowed,
    verify_signature,
    verify_webhook,
)

BODY = b'{"eventId":"evt-1"}'


def make_settings(**overrides) -> Settings:
    values = {"app_env": "production", "webhook_secret": "s3cret", "webhook_ip_allowlist": []}
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ========== 签名 ==========

def test_valid_signature_passes():
    signature = compute_signature(BODY, "s3cret")
    assert verify_signature(BODY, signature, "s3cret") is True


@pytest.mark.parametrize("signature", ["", "not-hex", "00" * 32])
def test_bad_signature_fails(signature):
    assert verify_signature(BODY, signature, "s3cret") is False


def test_signature_covers_body():
    signature = compute_signature(BODY, "s3cret")
    assert verify_signature(BODY + b" ", signature, "s3cret") is False


def test_verify_webhook_requires_signature_header():
    result = verify_webhook(BODY, {}, make_settings(), client_host="10.0.0.1")
    assert result.ok is False
    assert "Missing" in result.reason


def test_verify_webhook_ok():
    headers = {SIGNATURE_HEADER: compute_signature(BODY, "s3cret")}
    result = verify_webhook(BODY, headers, make_settings(), client_host="10.0.0.1")
    assert result.ok is True
    assert result.ip == "10.0.0.1"


def test_missing_secret_only_allowed_in_development():
    assert verify_webhook(BODY, {}, make_settings(webhook_secret="", app_env="development")).ok
    assert not verify_webhook(BODY, {}, make_settings(webhook_secret="")).ok


# ========== IP ==========

def test_client_ip_prefers_forwarded_for():
    headers = {"x-forwarded-for": "203.0.113.9, 10.0.0.1", "x-real-ip": "10.0.0.2"}
    assert get_client_ip(headers, fallback="127.0.0.1") == "203.0.113.9"
    assert get_client_ip({}, fallback="127.0.0.1") == "127.0.0.1"


def test_ip_allowlist_supports_cidr():
    allowlist = ["203.0.113.0/24", "198.51.100.7"]
    assert ip_allowed("203.0.113.42", allowlist)
    assert ip_allowed("198.51.100.7", allowlist)
    assert not ip_allowed("198.51.100.8", allowlist)
    assert not ip_allowed("garbage", allowlist)
    assert ip_allowed("198.51.100.8", [])


def test_ip_rejected_before_signature():
    headers = {
        SIGNATURE_HEADER: compute_signature(BODY, "s3cret"),
        "x-forwarded-for": "192.0.2.1",
    }
    result = verify_webhook(BODY, headers, make_settings(webhook_ip_allowlist=["203.0.113.0/24"]))
    assert result.ok is False
    assert "IP not allowed" in result.reason


def test_allowlist_parsed_from_comma_separated_env(monkeypatch):
    monkeypatch.setenv("WEBHOOK_IP_ALLOWLIST", "203.0.113.0/24, 198.51.100.7")
    settings = Settings(_env_file=None)
    assert settings.webhook_ip_allowlist == ["203.0.113.0/24", "198.51.100.7"]


# ========== 限流 ==========

class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now
    
    def __call__(self) -> float:
        return self.now


def test_rate_limiter_blocks_after_limit():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(limit=2, window_seconds=60, clock=clock)
    
    first = limiter.check("ip-a")
    second = limiter.check("ip-a")
    third = limiter.check("ip-a")
    
    assert first.allowed and second.allowed
    assert third.allowed is False
    assert third.remaining == 0
    assert third.headers["X-RateLimit-Limit"] == "2"
    assert "Retry-After" in third.headers


def test_rate_limiter_window_slides():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(limit=1, window_seconds=60, clock=clock)
    
    assert limiter.check("ip-a").allowed
    assert not limiter.check("ip-a").allowed
    
    clock.now += 61
    assert limiter.check("ip-a").allowed


def test_rate_limiter_keys_are_independent():
    limiter = SlidingWindowRateLimiter(limit=1, window_seconds=60, clock=FakeClock())
    assert limiter.check("ip-a").allowed
    assert limiter.check("ip-b").allowed
    assert limiter.check("ip-a").headers["X-RateLimit-Remaining"] == "0"


def test_rate_limiter_evicts_idle_buckets():
    """窗口过后，不再有请求的来源 IP 分桶被清除"""
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(limit=5, window_seconds=60, clock=clock)
    for i in range(10_000):
        limiter.check(f"application:10.{i // 65536}.{i // 256 % 256}.{i % 256}")
    assert limiter.bucket_count == 10_000
    
    clock.now += 30
    limiter.check("application:192.0.2.1")
    clock.now += 31
    result = limiter.check("application:198.51.100.7")
    
    assert result.allowed
    assert limiter.bucket_count == 2
    assert limiter.check("application:192.0.2.1").remaining == 3
