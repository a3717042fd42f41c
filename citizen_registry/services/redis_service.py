"""Redis service for rate limiting unauthenticated auth endpoints.

Redis never holds verification state; every status read goes to Postgres.
"""

from typing import Optional

import redis.asyncio as redis
import structlog

from citizen_registry.config import get_settings

logger = structlog.get_logger(__name__)

# Global Redis client
_redis_client: Optional[redis.Redis] = None

RATE_LIMIT_WINDOW_SECONDS = 60


async def get_redis() -> Optional[redis.Redis]:
    """Get or create the Redis client.

    Returns:
        Redis client or None if connection fails (graceful degradation)
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = get_settings()

    try:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        # Test connection
        await _redis_client.ping()
        logger.info("redis_connected", url=settings.redis_url.split("@")[-1])
        return _redis_client
    except Exception as e:
        logger.warning("redis_connection_failed", error=str(e))
        _redis_client = None
        return None


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis_client

    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None
        logger.info("redis_connection_closed")


class RedisService:
    """Fixed-window request counters keyed by endpoint and client."""

    def __init__(self):
        self.settings = get_settings()

    async def check_rate_limit(
        self, key: str, limit: Optional[int] = None
    ) -> tuple[bool, int]:
        """Check and increment the counter for ``key``.

        Args:
            key: Counter identity, e.g. ``login:203.0.113.7``
            limit: Optional custom limit (defaults to config)

        Returns:
            Tuple of (allowed: bool, remaining: int); remaining is -1 when
            Redis is unavailable
        """
        client = await get_redis()
        if client is None:
            # Graceful degradation: allow if Redis unavailable
            return True, -1

        limit = limit or self.settings.auth_rate_limit

        try:
            redis_key = f"rate_limit:{key}"
            current = await client.get(redis_key)

            if current is None:
                # First request in window
                await client.setex(redis_key, RATE_LIMIT_WINDOW_SECONDS, "1")
                return True, limit - 1

            count = int(current)
            if count >= limit:
                return False, 0

            await client.incr(redis_key)
            return True, limit - count - 1
        except Exception as e:
            logger.warning("redis_rate_limit_failed", error=str(e), key=key)
            # Graceful degradation: allow if error
            return True, -1
