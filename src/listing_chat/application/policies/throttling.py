from __future__ import annotations

from uuid import UUID

from listing_chat.application.exceptions import RateLimitedError
from listing_chat.application.ports.rate_limit import RateLimiter


async def assert_can_send(limiter: RateLimiter, user_id: UUID) -> None:
    """Count one message send for the user; raise once the window is exhausted."""
    result = await limiter.hit(f"send:{user_id}")
    if not result.allowed:
        raise RateLimitedError(
            "Too many messages sent. Please wait before sending more.",
            retry_after=result.retry_after,
        )
