"""
Tests for cache/store.py: make_cache_key(), InMemoryCacheStore, SqliteCacheStore.

Covers:
  - get immediately after set returns the value
  - get returns None once ttl has elapsed; get_entry still returns the stale entry
  - Last writer wins
  - SQLite store round-trips JSON values and survives reopen
  - purge_older_than() removes only old rows
"""

from datetime import timedelta

import pytest

from inventory_oracle.cache.store import (
    CacheEntry,
    InMemoryCacheStore,
    SqliteCacheStore,
    make_cache_key,
)


class TestMakeCacheKey:
    def test_joins_parts(self):
        assert make_cache_key("market_data", "esp32-01", "EUR") == "market_data:esp32-01:EUR"

    def test_drops_none_parts(self):
        assert make_cache_key("stock_alerts", None, "all") == "stock_alerts:all"


class TestCacheEntry:
    def test_fresh_until_ttl(self, clock):
        entry = CacheEntry(value=1, written_at=clock(), ttl_hours=1.0)
        assert entry.is_fresh(clock() + timedelta(minutes=59))
        assert not entry.is_fresh(clock() + timedelta(hours=1))

    def test_age_hours(self, clock):
        entry = CacheEntry(value=1, written_at=clock(), ttl_hours=1.0)
        assert entry.age_hours(clock() + timedelta(hours=30)) == pytest.approx(30.0)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, clock, tmp_path):
    if request.param == "memory":
        return InMemoryCacheStore(clock=clock)
    return SqliteCacheStore(str(tmp_path / "cache.db"), clock=clock)


@pytest.mark.asyncio
class TestCacheStore:
    async def test_get_after_set(self, store):
        await store.set("k", {"a": [1, 2]}, ttl_hours=1)
        assert await store.get("k") == {"a": [1, 2]}

    async def test_missing_key(self, store):
        assert await store.get("nope") is None
        assert await store.get_entry("nope") is None

    async def test_expired_value_hidden_but_entry_kept(self, store, clock):
        await store.set("k", 1.25, ttl_hours=1)
        clock.advance(hours=1, minutes=1)
        assert await store.get("k") is None
        entry = await store.get_entry("k")
        assert entry is not None
        assert entry.value == 1.25
        assert entry.age_hours(clock()) == pytest.approx(61 / 60)

    async def test_last_writer_wins(self, store, clock):
        await store.set("k", "old", ttl_hours=1)
        clock.advance(hours=2)
        await store.set("k", "new", ttl_hours=1)
        assert await store.get("k") == "new"

    async def test_delete(self, store):
        await store.set("k", 1, ttl_hours=1)
        await store.delete("k")
        assert await store.get_entry("k") is None


class TestSqliteCacheStore:
    def test_rejects_memory_path(self):
        with pytest.raises(ValueError):
            SqliteCacheStore(":memory:")

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path, clock):
        path = str(tmp_path / "cache.db")
        await SqliteCacheStore(path, clock=clock).set("k", [1, "two"], ttl_hours=24)
        assert await SqliteCacheStore(path, clock=clock).get("k") == [1, "two"]

    @pytest.mark.asyncio
    async def test_purge_older_than(self, tmp_path, clock):
        store = SqliteCacheStore(str(tmp_path / "cache.db"), clock=clock)
        await store.set("old", 1, ttl_hours=24)
        clock.advance(days=40)
        await store.set("new", 2, ttl_hours=24)

        deleted = store.purge_older_than(clock() - timedelta(days=30))

        assert deleted == 1
        assert await store.get_entry("old") is None
        assert await store.get("new") == 2
