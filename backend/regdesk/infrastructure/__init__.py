"""
Infrastructure layer: connections to systems outside the registration store.
"""

from .redis_client import get_redis, RedisClient

__all__ = ['get_redis', 'RedisClient']
