"""Fixed-window request counter stored in Redis."""
from __future__ import annotations

import logging

import redis.asyncio as aioredis

from listing_chat.application.ports.rate_limit import RateLimitResult

logger = logging.getLogger(__name__)


class RedisRateLimiter:
    """Implements application.ports.rate_limit.RateLimiter.

    Each key gets an INCR counter that expires with the window, so the
    first hit in a window starts the clock.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        *,
        limit: int,
        window_seconds: int,
        prefix: str = "ratelimit",
    ) -> None:
        self._redis = redis
        self._limit = limit
        self._window = window_seconds
        self._prefix = prefix

    async def hit(self, key: str) -> RateLimitResult:
        redis_key = f"{self._prefix}:{key}"
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.incr(redis_key)
            pipe.expire(redis_key, self._window, nx=True)
            pipe.ttl(redis_key)
            count, _, ttl = await pipe.execute()

        count = int(count)
        retry_after = int(ttl) if ttl and int(ttl) > 0 else self._window
        if count > self._limit:
            logger.info("Rate limit exceeded for %s (%d/%d)", key, count, self._limit)
            return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)
        return RateLimitResult(
            allowed=True,
            remaining=self._limit - count,
            retry_after=retry_after,
        )
