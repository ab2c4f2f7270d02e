"""
Redis Client

Shared async Redis client used for the directory cache, the submission
debounce and staff rate limits.

Redis is optional: when it cannot be reached at startup the client stays
None and every caller falls back to in-process state.
"""

import logging

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from hostel_pass.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis | None = None


async def init_redis() -> Redis | None:
    """
    Connect to Redis. Call this on application startup.

    Returns:
        The client, or None if Redis is unreachable
    """
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis unavailable at startup, using in-memory fallbacks: {e}")
        await client.aclose()
        redis_client = None
        return None

    redis_client = client
    logger.info("Redis connection established")
    return redis_client


async def get_redis() -> Redis | None:
    """
    FastAPI dependency returning the Redis client, or None if unavailable.

    Usage:
        async def endpoint(redis: Redis | None = Depends(get_redis)):
            ...
    """
    return redis_client


def is_redis_available() -> bool:
    """Check if the Redis client is initialized."""
    return redis_client is not None


async def close_redis() -> None:
    """Close the Redis connection."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
