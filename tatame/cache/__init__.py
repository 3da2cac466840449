"""
TATAME cache: Redis-backed JSON key-value cache.
"""

from .redis_cache import CacheService, close_redis_client, get_redis_client, redis_health

__all__ = ["CacheService", "close_redis_client", "get_redis_client", "redis_health"]
