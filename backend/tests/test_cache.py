"""Tests for caching utilities (no Redis server needed)."""

import pytest
import redis.asyncio as redis

from app.auth.actor import Actor
from app.config import settings
from app.utils import cache
from app.utils.cache import cache_key, cached, company_key_builder, company_scope


class BrokenRedis:
    """Redis client whose every call fails."""

    async def get(self, key):
        raise redis.ConnectionError("connection refused")

    async def setex(self, key, ttl, value):
        raise redis.ConnectionError("connection refused")

    async def scan_iter(self, match=None):
        raise redis.ConnectionError("connection refused")
        yield  # pragma: no cover


@pytest.mark.unit
class TestCacheKeys:

    def test_cache_key_generation(self):
        key1 = cache_key(limit=50, offset=0)
        key2 = cache_key(offset=0, limit=50)
        key3 = cache_key(limit=100, offset=0)

        assert key1 == key2
        assert key1 != key3
        assert cache_key() == "default"

    def test_company_keys_are_scoped(self):
        build = company_key_builder("stock_summary")
        a = Actor(user_id="u1", company_id="company-a")
        b = Actor(user_id="u1", company_id="company-b")

        key_a = build(fabric_type="Cotton", db=object(), actor=a)
        key_b = build(fabric_type="Cotton", db=object(), actor=b)

        assert key_a.startswith(company_scope("company-a", "stock_summary:"))
        assert key_b.startswith("c:company-b:stock_summary:")
        assert key_a.split(":")[-1] == key_b.split(":")[-1]
        assert build(fabric_type="Linen", actor=a) != key_a


@pytest.mark.unit
@pytest.mark.asyncio
class TestCachedDecorator:

    async def test_bypassed_when_disabled(self, monkeypatch):
        monkeypatch.setattr(settings, "cache_enabled", False)
        calls = 0

        @cached(ttl=10, prefix="test")
        async def summary(limit: int):
            nonlocal calls
            calls += 1
            return {"limit": limit}

        assert await summary(limit=5) == {"limit": 5}
        assert await summary(limit=5) == {"limit": 5}
        assert calls == 2

    async def test_falls_back_when_redis_fails(self, monkeypatch):
        monkeypatch.setattr(settings, "cache_enabled", True)

        async def broken_redis():
            return BrokenRedis()

        monkeypatch.setattr(cache, "get_redis", broken_redis)
        calls = 0

        @cached(ttl=10, prefix="test")
        async def summary(limit: int):
            nonlocal calls
            calls += 1
            return {"limit": limit}

        assert await summary(limit=5) == {"limit": 5}
        assert calls == 1

        # Invalidation failures are logged, not raised
        await cache.invalidate_company_stock("company-a")
