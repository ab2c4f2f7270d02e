"""
Rate Limiting Module

Request throttling backed by the shared Redis client, falling back to
in-memory storage when Redis is unavailable.

Two guards are provided:
- check_rate_limit(): sliding-window counter (staff approve/decline actions)
- claim_debounce(): one-shot window that rejects repeats of the same key
  (duplicate pass submissions)

Both are best-effort. The memory fallback does not work across processes.
"""

import logging
import time

from fastapi import HTTPException, status
from redis.exceptions import RedisError

from hostel_pass.core import redis as redis_module

logger = logging.getLogger(__name__)

# In-memory rate limit storage (fallback when Redis unavailable)
# Format: {key: [timestamp, ...]}
_memory_windows: dict[str, list[float]] = {}

# In-memory debounce storage: {key: expires_at}
_memory_debounce: dict[str, float] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": (
                    f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds."
                ),
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(client, key: str, limit: int, window_seconds: int) -> bool:
    """Sliding window over a Redis sorted set of request timestamps."""
    now = time.time()

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, now - window_seconds)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)
    results = await pipe.execute()

    return results[1] < limit


def _check_rate_limit_memory(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    window = [ts for ts in _memory_windows.get(key, []) if ts > now - window_seconds]

    if len(window) >= limit:
        _memory_windows[key] = window
        return False

    window.append(now)
    _memory_windows[key] = window
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check if a request is within rate limits.

    Args:
        key: Unique key for this rate limit (e.g., "staff_action:approve:WARDEN01")
        limit: Maximum requests allowed in the window
        window_seconds: Time window in seconds

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    client = redis_module.redis_client
    if client is not None:
        try:
            return await _check_rate_limit_redis(client, key, limit, window_seconds)
        except RedisError as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


def _claim_debounce_memory(key: str, window_seconds: float) -> bool:
    now = time.time()

    # Drop stale entries while we are here
    for stale in [k for k, expires_at in _memory_debounce.items() if expires_at <= now]:
        del _memory_debounce[stale]

    if key in _memory_debounce:
        return False

    _memory_debounce[key] = now + window_seconds
    return True


async def claim_debounce(key: str, window_seconds: float) -> bool:
    """
    Claim a debounce key for a window.

    Returns:
        True if the key was free (the action may proceed), False if the same
        key was claimed within the window
    """
    client = redis_module.redis_client
    if client is not None:
        try:
            claimed = await client.set(
                f"debounce:{key}",
                "1",
                px=int(window_seconds * 1000),
                nx=True,
            )
            return bool(claimed)
        except RedisError as e:
            logger.warning(f"Redis debounce check failed, using memory: {e}")

    return _claim_debounce_memory(key, window_seconds)


def reset_memory_state() -> None:
    """Clear in-memory fallback state."""
    _memory_windows.clear()
    _memory_debounce.clear()


__all__ = [
    "RateLimitExceeded",
    "check_rate_limit",
    "claim_debounce",
    "reset_memory_state",
]
