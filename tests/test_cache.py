"""
缓存层单元测试

覆盖范围：
  - 缓存键生成
  - 惰性过期（now >= stored_at + ttl 即视为不存在）
  - 覆盖写入、失效、过期条目保留与容量清理
  - Redis 后端（使用内存假客户端）
"""

import json

import pytest

from conftest import FakeClock
from searchinvest.layers.cache import (
    CacheEntry,
    MemoryCacheStore,
    RedisCacheStore,
    create_cache_store,
    make_key,
)


# ─────────────────────────────────────────────────────────
# 1. 缓存键
# ─────────────────────────────────────────────────────────

class TestCacheKeys:
    def test_key_format(self):
        assert make_key("company", "AAPL") == "company:AAPL"
        assert make_key("market", "snapshot") == "market:snapshot"

    def test_long_key_hashed(self):
        assert len(make_key("ns", *["part"] * 50)) <= 250

    def test_key_consistency(self):
        assert make_key("a", "b", "c") == make_key("a", "b", "c")


# ─────────────────────────────────────────────────────────
# 2. 内存后端
# ─────────────────────────────────────────────────────────

class TestMemoryCacheStore:
    def setup_method(self):
        self.clock = FakeClock()
        self.cache = MemoryCacheStore(stale_retention=300, max_entries=100, clock=self.clock)

    @pytest.mark.asyncio
    async def test_get_absent(self):
        assert await self.cache.get("company:AAPL") is None
        assert await self.cache.get_entry("company:AAPL") is None

    @pytest.mark.asyncio
    async def test_set_then_get(self):
        await self.cache.set("company:AAPL", {"name": "Apple"}, ttl=60)
        assert await self.cache.get("company:AAPL") == {"name": "Apple"}

    @pytest.mark.asyncio
    async def test_last_write_wins(self):
        await self.cache.set("k", "v1", ttl=60)
        await self.cache.set("k", "v2", ttl=60)
        assert await self.cache.get("k") == "v2"

    @pytest.mark.asyncio
    async def test_expires_exactly_at_ttl(self):
        await self.cache.set("k", "v", ttl=60)
        self.clock.advance(59)
        assert await self.cache.get("k") == "v"
        self.clock.advance(1)
        assert await self.cache.get("k") is None

    @pytest.mark.asyncio
    async def test_expired_entry_still_readable_for_fallback(self):
        await self.cache.set("k", "v", ttl=60)
        self.clock.advance(70)
        entry = await self.cache.get_entry("k")
        assert entry is not None
        assert entry.value == "v"
        assert not entry.is_fresh(self.clock())

    @pytest.mark.asyncio
    async def test_entry_dropped_after_retention(self):
        await self.cache.set("k", "v", ttl=60)
        self.clock.advance(60 + 300)
        assert await self.cache.get_entry("k") is None

    @pytest.mark.asyncio
    async def test_set_after_expiry_repopulates(self):
        await self.cache.set("k", "old", ttl=10)
        self.clock.advance(20)
        assert await self.cache.get("k") is None
        await self.cache.set("k", "new", ttl=10)
        entry = await self.cache.get_entry("k")
        assert entry.value == "new" and entry.stored_at == self.clock()

    @pytest.mark.asyncio
    async def test_invalidate(self):
        await self.cache.set("k", "v", ttl=60)
        await self.cache.invalidate("k")
        assert await self.cache.get_entry("k") is None
        await self.cache.invalidate("missing")  # 不存在时无操作

    @pytest.mark.asyncio
    async def test_sweep_bounds_memory(self):
        cache = MemoryCacheStore(stale_retention=0, max_entries=3, clock=self.clock)
        for i in range(3):
            await cache.set(f"k{i}", i, ttl=10)
            self.clock.advance(1)
        await cache.set("k3", 3, ttl=10)
        stats = await cache.stats()
        assert stats["entries"] == 3
        # 最早写入的被淘汰
        assert await cache.get("k0") is None
        assert await cache.get("k3") == 3

    @pytest.mark.asyncio
    async def test_overwrite_moves_key_to_newest(self):
        cache = MemoryCacheStore(stale_retention=0, max_entries=3, clock=self.clock)
        for i in range(3):
            await cache.set(f"k{i}", i, ttl=100)
            self.clock.advance(1)
        await cache.set("k0", "again", ttl=100)
        await cache.set("k3", 3, ttl=100)
        assert await cache.get("k0") == "again"
        assert await cache.get("k1") is None
        assert await cache.get("k2") == 2

    @pytest.mark.asyncio
    async def test_sweep_prefers_dead_entries(self):
        cache = MemoryCacheStore(stale_retention=0, max_entries=2, clock=self.clock)
        await cache.set("short", 1, ttl=1)
        await cache.set("long", 2, ttl=100)
        self.clock.advance(5)
        await cache.set("new", 3, ttl=100)
        assert await cache.get("long") == 2
        assert await cache.get("new") == 3

    @pytest.mark.asyncio
    async def test_stats(self):
        await self.cache.set("a", 1, ttl=10)
        await self.cache.set("b", 2, ttl=100)
        self.clock.advance(50)
        stats = await self.cache.stats()
        assert stats["backend"] == "memory"
        assert stats["entries"] == 2
        assert stats["fresh"] == 1 and stats["expired"] == 1


# ─────────────────────────────────────────────────────────
# 3. Redis 后端
# ─────────────────────────────────────────────────────────

class FakeRedis:
    def __init__(self):
        self.data = {}
        self.expiry = {}

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, seconds, value):
        self.data[key] = value
        self.expiry[key] = seconds

    async def delete(self, key):
        self.data.pop(key, None)

    async def dbsize(self):
        return len(self.data)


class TestRedisCacheStore:
    def setup_method(self):
        from searchinvest.config import SearchInvestSettings
        self.settings = SearchInvestSettings(CACHE_STALE_RETENTION=600, REDIS_KEY_PREFIX="t:")
        self.redis = FakeRedis()
        self.clock = FakeClock()
        self.cache = RedisCacheStore(self.settings, client=self.redis, clock=self.clock)

    @pytest.mark.asyncio
    async def test_roundtrip_and_expiry(self):
        await self.cache.set("company:AAPL", {"name": "Apple"}, ttl=60)
        assert self.redis.expiry["t:company:AAPL"] == 660
        assert await self.cache.get("company:AAPL") == {"name": "Apple"}
        self.clock.advance(61)
        assert await self.cache.get("company:AAPL") is None
        entry = await self.cache.get_entry("company:AAPL")
        assert entry.value == {"name": "Apple"}

    @pytest.mark.asyncio
    async def test_corrupt_entry_ignored(self):
        self.redis.data["t:bad"] = "not-json"
        assert await self.cache.get_entry("bad") is None

    @pytest.mark.asyncio
    async def test_invalidate(self):
        await self.cache.set("k", 1, ttl=60)
        await self.cache.invalidate("k")
        assert await self.cache.get("k") is None

    @pytest.mark.asyncio
    async def test_unconnected_raises(self):
        cache = RedisCacheStore(self.settings)
        with pytest.raises(RuntimeError):
            await cache.get("k")

    def test_entry_serialization(self):
        entry = CacheEntry(key="k", value=[1, 2], stored_at=10.0, ttl=5.0)
        assert CacheEntry.from_dict(json.loads(json.dumps(entry.to_dict()))) == entry


def test_create_cache_store_by_settings():
    from searchinvest.config import SearchInvestSettings
    assert create_cache_store(SearchInvestSettings(REDIS_ENABLED=False)).backend == "memory"
    assert create_cache_store(SearchInvestSettings(REDIS_ENABLED=True)).backend == "redis"
