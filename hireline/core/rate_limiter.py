"""
Webhook 频率限制模块

滑动窗口计数器，按来源 IP + 路由分桶。
计数保存在进程内存中，多个并发请求共享同一实例。
"""
import math
import time
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Deque, Dict


@dataclass(frozen=True)
class RateLimitResult:
    """单次检查结果"""
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # Unix 时间戳（秒）
    
    @property
    def headers(self) -> Dict[str, str]:
        """标准频率限制响应头"""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(max(0, math.ceil(self.reset_at - time.time())))
        return headers


class SlidingWindowRateLimiter:
    """
    线程安全的滑动窗口限流器
    
    check() 在同一把锁内完成"清理过期 -> 判断 -> 计数"，
    保证并发请求下的原子性。
    每经过一个窗口清扫一次，移除窗口内已无请求的分桶。
    """
    
    def __init__(
        self,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = Lock()
        self._last_sweep = clock()
    
    @property
    def bucket_count(self) -> int:
        """当前保留的分桶数量"""
        with self._lock:
            return len(self._hits)
    
    def _sweep(self, window_start: float) -> None:
        """移除窗口内已无请求的分桶（调用方持有锁）"""
        expired = [key for key, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for key in expired:
            del self._hits[key]
    
    def check(self, key: str) -> RateLimitResult:
        """记录一次请求并返回是否放行"""
        now = self._clock()
        window_start = now - self.window_seconds
        
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(window_start)
                self._last_sweep = now
            
            hits = self._hits.get(key)
            if hits is None:
                hits = self._hits[key] = deque()
            while hits and hits[0] <= window_start:
                hits.popleft()
            
            allowed = len(hits) < self.limit
            if allowed:
                hits.append(now)
            
            reset_at = (hits[0] + self.window_seconds) if hits else (now + self.window_seconds)
            remaining = max(0, self.limit - len(hits))
            if not hits:
                del self._hits[key]
        
        return RateLimitResult(
            allowed=allowed,
            limit=self.limit,
            remaining=remaining,
            reset_at=reset_at,
        )


_webhook_limiter: SlidingWindowRateLimiter | None = None


def get_webhook_rate_limiter() -> SlidingWindowRateLimiter:
    """获取全局 Webhook 限流器（FastAPI 依赖）"""
    global _webhook_limiter
    if _webhook_limiter is None:
        from .config import settings
        _webhook_limiter = SlidingWindowRateLimiter(
            limit=settings.webhook_rate_limit,
            window_seconds=settings.webhook_rate_window_seconds,
        )
    return _webhook_limiter
