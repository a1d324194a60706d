"""Token bucket rate limiting keyed by actor id."""

import abc
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from .config import settings

logger = logging.getLogger(__name__)


@dataclass
class RateLimitResult:
    """Outcome of a single bucket check."""
    allowed: bool
    limit: int
    remaining: int
    retry_after: int
    key: str


class RateLimiter(abc.ABC):
    """Token bucket limiter: `limit` tokens refilled per `period` seconds, up to `burst`."""

    def __init__(self, limit: int, period: int, burst: Optional[int] = None):
        self.limit = limit
        self.period = period
        self.bucket_size = burst or limit
        self.refill_rate = limit / period  # tokens per second

    def _consume(self, key: str, tokens: float, last_refill: float, now: float) -> tuple[float, RateLimitResult]:
        """Refill the bucket up to `now` and try to take one token."""
        elapsed = max(0.0, now - last_refill)
        tokens = min(self.bucket_size, tokens + elapsed * self.refill_rate)

        if tokens >= 1:
            tokens -= 1
            return tokens, RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=int(tokens),
                retry_after=0,
                key=key,
            )

        retry_after = max(1, int((1 - tokens) / self.refill_rate + 0.999))
        return tokens, RateLimitResult(
            allowed=False,
            limit=self.limit,
            remaining=0,
            retry_after=retry_after,
            key=key,
        )

    @abc.abstractmethod
    async def check(self, key: str) -> RateLimitResult:
        """Consume one token for `key` if available."""

    async def close(self) -> None:
        """Release any connection the limiter holds."""


class InMemoryRateLimiter(RateLimiter):
    """Per-process buckets; suitable for a single instance and for tests."""

    def __init__(self, limit: int, period: int, burst: Optional[int] = None, clock=time.monotonic):
        super().__init__(limit, period, burst)
        self._clock = clock
        self._buckets: dict[str, tuple[float, float]] = {}
        self._lock = asyncio.Lock()

    async def check(self, key: str) -> RateLimitResult:
        async with self._lock:
            now = self._clock()
            tokens, last_refill = self._buckets.get(key, (float(self.bucket_size), now))
            tokens, result = self._consume(key, tokens, last_refill, now)
            self._buckets[key] = (tokens, now)
        return result

    def reset(self, key: Optional[str] = None) -> None:
        """Forget one bucket, or all of them."""
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)


class RedisRateLimiter(RateLimiter):
    """Buckets stored in Redis hashes so every instance shares the same budget."""

    def __init__(self, redis_client, limit: int, period: int, burst: Optional[int] = None):
        super().__init__(limit, period, burst)
        self.redis = redis_client

    async def check(self, key: str) -> RateLimitResult:
        bucket_key = f"rate_limit:bucket:{key}"
        now = time.time()

        try:
            tokens_raw, last_refill_raw = await self.redis.hmget(bucket_key, "tokens", "last_refill")
            tokens = float(tokens_raw) if tokens_raw is not None else float(self.bucket_size)
            last_refill = float(last_refill_raw) if last_refill_raw is not None else now

            tokens, result = self._consume(key, tokens, last_refill, now)

            await self.redis.hset(bucket_key, mapping={"tokens": tokens, "last_refill": now})
            await self.redis.expire(bucket_key, self.period * 2)
            return result

        except RedisError as e:
            # Fail open: an unreachable Redis must not block writes
            logger.warning(
                "Rate limit check skipped, Redis unavailable",
                extra={"key": key, "error": str(e)},
            )
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit,
                retry_after=0,
                key=key,
            )

    async def close(self) -> None:
        await self.redis.aclose()


def build_rate_limiter() -> RateLimiter:
    """Pick the limiter implementation from settings."""
    if settings.redis_url:
        logger.info("Using Redis rate limiter")
        client = aioredis.from_url(settings.redis_url, decode_responses=True)
        return RedisRateLimiter(
            client,
            limit=settings.rate_limit_requests,
            period=settings.rate_limit_period_seconds,
            burst=settings.rate_limit_burst,
        )

    return InMemoryRateLimiter(
        limit=settings.rate_limit_requests,
        period=settings.rate_limit_period_seconds,
        burst=settings.rate_limit_burst,
    )


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """FastAPI dependency returning the process-wide limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = build_rate_limiter()
    return _rate_limiter


async def close_rate_limiter() -> None:
    """Release the process-wide limiter's connections, if one was built."""
    global _rate_limiter
    if _rate_limiter is not None:
        await _rate_limiter.close()
        _rate_limiter = None
