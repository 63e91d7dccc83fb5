"""
Redis client for shared scanner state.
Separated from business logic for clean architecture.
"""

from typing import Optional

import redis.asyncio as redis

from regdesk.core.config import settings
from regdesk.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Singleton async Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> redis.Redis:
        """Get or create Redis client instance."""
        if cls._instance is None:
            cls._instance = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return cls._instance

    @classmethod
    async def ping(cls) -> bool:
        """Check connectivity; used at startup and by /health."""
        if not settings.REDIS_ENABLED:
            return False
        try:
            return bool(await cls.get_client().ping())
        except Exception as e:
            logger.warning("redis_ping_failed", error=str(e))
            return False

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._instance:
            await cls._instance.aclose()
            cls._instance = None


# Convenience function
def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    return RedisClient.get_client()
