"""Tests for the Redis cache wrapper, using an in-memory stand-in client."""

from __future__ import annotations

import fnmatch
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tatame.cache import CacheService, redis_health


class FakePipeline:
    def __init__(self, client: FakeRedis) -> None:
        self.client = client
        self.ops: list[tuple] = []

    async def __aenter__(self) -> FakePipeline:
        return self

    async def __aexit__(self, *exc) -> None:
        return None

    def set(self, key, value, ex=None):
        self.ops.append((key, value, ex))
        return self

    async def execute(self) -> list[bool]:
        for key, value, ex in self.ops:
            await self.client.set(key, value, ex=ex)
        return [True] * len(self.ops)


class FakeRedis:
    """Just enough of redis.asyncio.Redis (decode_responses=True)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiry: dict[str, int | None] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, *keys) -> int:
        return sum(1 for k in keys if self.data.pop(k, None) is not None)

    async def exists(self, key) -> int:
        return int(key in self.data)

    async def mget(self, keys):
        return [self.data.get(k) for k in keys]

    async def scan_iter(self, match=None):
        for key in list(self.data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    def pipeline(self, transaction=True) -> FakePipeline:
        return FakePipeline(self)


class DownRedis:
    """Every command fails as if the server were unreachable."""

    def __getattr__(self, name):
        async def fail(*args, **kwargs):
            raise RedisConnectionError("Connection refused")

        return fail


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def cache(fake_redis) -> CacheService:
    return CacheService(fake_redis, prefix="test", default_ttl=300)


@pytest.mark.asyncio
async def test_set_get_roundtrip_with_prefix_and_ttl(cache, fake_redis) -> None:
    assert await cache.set("user:1", {"name": "Ana", "roles": ["aluno"]}) is True
    assert fake_redis.data["test:user:1"] == json.dumps({"name": "Ana", "roles": ["aluno"]})
    assert fake_redis.expiry["test:user:1"] == 300
    assert await cache.get("user:1") == {"name": "Ana", "roles": ["aluno"]}

    await cache.set("forever", 1, ttl=0)
    assert fake_redis.expiry["test:forever"] is None
    assert await cache.get("missing") is None


@pytest.mark.asyncio
async def test_non_json_values(cache, fake_redis) -> None:
    fake_redis.data["test:raw"] = "plain text"
    assert await cache.get("raw") == "plain text"
    assert await cache.set("bad", object()) is False


@pytest.mark.asyncio
async def test_delete_and_exists(cache) -> None:
    await cache.set("k", "v")
    assert await cache.exists("k") is True
    assert await cache.delete("k") is True
    assert await cache.delete("k") is False
    assert await cache.exists("k") is False


@pytest.mark.asyncio
async def test_get_or_set(cache) -> None:
    calls = []

    async def load():
        calls.append(1)
        return ["astra", "neve"]

    assert await cache.get_or_set("themes", load) == ["astra", "neve"]
    assert await cache.get_or_set("themes", load) == ["astra", "neve"]
    assert len(calls) == 1

    async def nothing():
        return None

    assert await cache.get_or_set("empty", nothing) is None
    assert await cache.exists("empty") is False


@pytest.mark.asyncio
async def test_invalidate_pattern(cache, fake_redis) -> None:
    await cache.mset({"catalog:plugins:all": [1], "catalog:themes:all": [2], "user:1": 3})
    assert await cache.invalidate_pattern("catalog:*") == 2
    assert list(fake_redis.data) == ["test:user:1"]
    assert await cache.invalidate_pattern("catalog:*") == 0


@pytest.mark.asyncio
async def test_mget_and_mset(cache, fake_redis) -> None:
    assert await cache.mset({"a": 1, "b": {"x": True}}, ttl=60) is True
    assert fake_redis.expiry["test:a"] == 60
    assert await cache.mget(["a", "b", "c"]) == {"a": 1, "b": {"x": True}, "c": None}
    assert await cache.mget([]) == {}
    assert await cache.mset({}) is True


@pytest.mark.asyncio
async def test_redis_failures_degrade_gracefully() -> None:
    cache = CacheService(DownRedis(), prefix="test")
    assert await cache.get("k") is None
    assert await cache.set("k", 1) is False
    assert await cache.delete("k") is False
    assert await cache.exists("k") is False
    assert await cache.mget(["a", "b"]) == {"a": None, "b": None}

    async def load():
        return 42

    assert await cache.get_or_set("k", load) == 42


@pytest.mark.asyncio
async def test_redis_health(fake_redis) -> None:
    assert await redis_health(fake_redis) == {"status": "healthy"}
    status = await redis_health(DownRedis())
    assert status["status"] == "unhealthy"
    assert "Connection refused" in status["error"]
