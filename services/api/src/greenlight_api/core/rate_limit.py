"""按客户端维度的令牌桶限流器。

桶表由单把互斥锁保护，插入、查找、扣减与清理全部在锁内完成，
锁内只做内存运算，不做任何 I/O。
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from threading import Lock

logger = logging.getLogger("greenlight_api.rate_limit")


@dataclass
class Bucket:
    """单个客户端的令牌桶状态。"""

    tokens: float
    capacity: int
    refill_rate: float
    last_refill: float
    last_seen: float


@dataclass(frozen=True)
class RateLimitDecision:
    """一次准入判定结果。"""

    allowed: bool
    remaining: float
    retry_after: float = 0.0


class RateLimiter:
    """令牌桶限流器。

    每个客户端标识一个桶，首次访问时懒创建并装满；
    `enabled=False` 时作为策略开关整体放行，调用方代码无需改动。
    """

    def __init__(
        self,
        *,
        rps: float,
        burst: int,
        enabled: bool = True,
        idle_retention: float = 180.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if rps <= 0:
            raise ValueError("rate limiter rps must be greater than 0")
        if burst < 1:
            raise ValueError("rate limiter burst must be at least 1")
        if idle_retention <= 0:
            raise ValueError("rate limiter idle retention must be greater than 0")
        self.rps = float(rps)
        self.burst = int(burst)
        self.enabled = enabled
        self.idle_retention = float(idle_retention)
        self._clock = clock
        self._buckets: dict[str, Bucket] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._buckets)

    def allow(self, key: str) -> RateLimitDecision:
        """为客户端扣减一个令牌并返回判定结果。"""
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = Bucket(
                    tokens=float(self.burst),
                    capacity=self.burst,
                    refill_rate=self.rps,
                    last_refill=now,
                    last_seen=now,
                )
                self._buckets[key] = bucket

            elapsed = max(0.0, now - bucket.last_refill)
            bucket.tokens = min(float(bucket.capacity), bucket.tokens + elapsed * bucket.refill_rate)
            bucket.last_refill = now
            bucket.last_seen = now

            if bucket.tokens >= 1:
                bucket.tokens -= 1
                return RateLimitDecision(allowed=True, remaining=bucket.tokens)

            retry_after = (1 - bucket.tokens) / bucket.refill_rate
            return RateLimitDecision(allowed=False, remaining=bucket.tokens, retry_after=retry_after)

    def sweep(self, now: float | None = None) -> int:
        """清理超过保留时长未访问的桶，返回清理数量。"""
        with self._lock:
            current = self._clock() if now is None else now
            stale_keys = [
                key for key, bucket in self._buckets.items() if current - bucket.last_seen > self.idle_retention
            ]
            for key in stale_keys:
                self._buckets.pop(key, None)
        if stale_keys:
            logger.debug("rate limiter swept idle buckets count=%s", len(stale_keys))
        return len(stale_keys)

    async def run_sweeper(self, interval: float) -> None:
        """周期性清理空闲桶，直到任务被取消。"""
        while True:
            await asyncio.sleep(interval)
            self.sweep()
