"""
TATAME Cache - Redis key-value wrapper

Values are stored as JSON under ``<prefix>:<key>``. Redis being down never
breaks a caller: failures are logged and reported as a miss (``None``),
``False`` or ``0``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from tatame.shared.settings import CACHE_DEFAULT_TTL, CACHE_PREFIX, REDIS_URL

logger = logging.getLogger("tatame.cache")

DEFAULT_PREFIX = CACHE_PREFIX
DEFAULT_TTL = CACHE_DEFAULT_TTL

_client: redis.Redis | None = None


# =============================================================================
# Shared client
# =============================================================================
def get_redis_client(url: str | None = None) -> redis.Redis:
    """Return the process-wide client, creating it from REDIS_URL on first use."""
    global _client
    if _client is None:
        _client = redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        logger.info("Redis client created")
    return _client


async def close_redis_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
        logger.info("Redis client closed")


async def redis_health(client: redis.Redis | None = None) -> dict[str, Any]:
    try:
        await (client or get_redis_client()).ping()
        return {"status": "healthy"}
    except RedisError as exc:
        return {"status": "unhealthy", "error": str(exc)}


# =============================================================================
# Cache service
# =============================================================================
class CacheService:
    """Namespaced JSON cache on top of a redis.asyncio client."""

    def __init__(
        self,
        client: redis.Redis | None = None,
        prefix: str = DEFAULT_PREFIX,
        default_ttl: int = DEFAULT_TTL,
    ) -> None:
        self.client = client or get_redis_client()
        self.prefix = prefix
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _ttl(self, ttl: int | None) -> int | None:
        ttl = self.default_ttl if ttl is None else ttl
        return ttl if ttl > 0 else None

    @staticmethod
    def _loads(raw: Any) -> Any:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw

    async def get(self, key: str) -> Any:
        try:
            raw = await self.client.get(self._key(key))
        except RedisError as exc:
            logger.error(f"Cache get error for {key}: {exc}")
            return None
        return self._loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        try:
            await self.client.set(self._key(key), json.dumps(value), ex=self._ttl(ttl))
            return True
        except (RedisError, TypeError) as exc:
            logger.error(f"Cache set error for {key}: {exc}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            return await self.client.delete(self._key(key)) > 0
        except RedisError as exc:
            logger.error(f"Cache delete error for {key}: {exc}")
            return False

    async def exists(self, key: str) -> bool:
        try:
            return await self.client.exists(self._key(key)) > 0
        except RedisError as exc:
            logger.error(f"Cache exists error for {key}: {exc}")
            return False

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: int | None = None,
    ) -> Any:
        """Return the cached value, or await ``factory()`` and cache its result."""
        cached = await self.get(key)
        if cached is not None:
            return cached
        value = await factory()
        if value is not None:
            await self.set(key, value, ttl)
        return value

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key under the prefix matching ``pattern``. Returns the count."""
        try:
            keys = [k async for k in self.client.scan_iter(match=self._key(pattern))]
            if not keys:
                return 0
            return await self.client.delete(*keys)
        except RedisError as exc:
            logger.error(f"Cache invalidate error for {pattern}: {exc}")
            return 0

    async def mget(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        try:
            raws = await self.client.mget([self._key(k) for k in keys])
        except RedisError as exc:
            logger.error(f"Cache mget error: {exc}")
            return {k: None for k in keys}
        return {k: self._loads(raw) for k, raw in zip(keys, raws)}

    async def mset(self, items: dict[str, Any], ttl: int | None = None) -> bool:
        if not items:
            return True
        expiry = self._ttl(ttl)
        try:
            async with self.client.pipeline(transaction=False) as pipe:
                for key, value in items.items():
                    pipe.set(self._key(key), json.dumps(value), ex=expiry)
                await pipe.execute()
            return True
        except (RedisError, TypeError) as exc:
            logger.error(f"Cache mset error: {exc}")
            return False
