"""
Tests for the TTL cache backends.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.services.availability import AvailabilityConfig, MemoryCache, RedisCache, build_cache

from conftest import FakeClock


class TestMemoryCacheBasics:

    def test_set_then_get(self, cache):
        cache.set("availability:daily:a", {"x": 1}, ttl=60)

        assert cache.get("availability:daily:a") == {"x": 1}
        assert cache.has("availability:daily:a")

    def test_missing_key(self, cache):
        assert cache.get("nope") is None
        assert not cache.has("nope")

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.set("k", "v", ttl=60)

        clock.advance(59)
        assert cache.get("k") == "v"

        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_default_ttl_used(self, clock):
        cache = MemoryCache(default_ttl=10, clock=clock)
        cache.set("k", "v")

        clock.advance(10)
        assert cache.get("k") is None

    def test_replace_resets_expiry(self, cache, clock):
        cache.set("k", "old", ttl=60)
        clock.advance(50)
        cache.set("k", "new", ttl=60)
        clock.advance(50)

        assert cache.get("k") == "new"

    def test_has_sees_stored_none(self, cache, clock):
        cache.set("k", None, ttl=10)

        assert cache.has("k") is True
        assert cache.get("k") is None

        clock.advance(10)
        assert cache.has("k") is False
        assert len(cache) == 0

    def test_non_positive_ttl_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.set("k", "v", ttl=0)

    def test_delete(self, cache):
        cache.set("k", "v")

        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.get("k") is None

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()

        assert len(cache) == 0


class TestMemoryCacheEviction:
    """Bounded capacity: the oldest write goes first."""

    def test_evicts_exactly_the_oldest_write(self, clock):
        cache = MemoryCache(max_size=3, clock=clock)
        for key in ("a", "b", "c"):
            cache.set(key, key)
            clock.advance(1)

        cache.set("d", "d")

        assert len(cache) == 3
        assert cache.get("a") is None
        assert [cache.get(k) for k in ("b", "c", "d")] == ["b", "c", "d"]

    def test_reads_do_not_protect_from_eviction(self, clock):
        cache = MemoryCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")

        cache.set("c", 3)

        assert cache.get("a") is None
        assert cache.get("b") == 2

    def test_rewrite_moves_key_to_newest(self, clock):
        cache = MemoryCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)

        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 10

    def test_replacing_existing_key_does_not_evict(self, clock):
        cache = MemoryCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("b", 20)

        assert cache.get("a") == 1
        assert len(cache) == 2


class TestMemoryCachePatterns:

    def test_delete_pattern_removes_only_matching_date(self, cache):
        cache.set("availability:daily:date:2025-01-06|plan_type:DIY|unit_count:1", 1)
        cache.set("availability:daily:date:2025-01-06|plan_type:FULL_SERVICE|unit_count:2", 2)
        cache.set("availability:daily:date:2025-01-07|plan_type:DIY|unit_count:1", 3)

        deleted = cache.delete_pattern("availability:daily:*date:2025-01-06*")

        assert deleted == 2
        assert cache.get("availability:daily:date:2025-01-07|plan_type:DIY|unit_count:1") == 3

    def test_delete_pattern_without_matches(self, cache):
        cache.set("availability:daily:x", 1)

        assert cache.delete_pattern("availability:monthly:*") == 0
        assert len(cache) == 1


class TestMemoryCacheSweep:

    def test_sweep_removes_expired_entries(self, cache, clock):
        cache.set("short", 1, ttl=10)
        cache.set("long", 2, ttl=100)
        clock.advance(20)

        assert cache.sweep_expired() == 1
        assert len(cache) == 1
        assert cache.get("long") == 2

    def test_stats_lists_live_entries(self, cache, clock):
        cache.set("short", 1, ttl=10)
        cache.set("long", 2, ttl=100)
        clock.advance(20)

        stats = cache.stats()

        assert stats["size"] == 1
        assert stats["max_size"] == 100
        assert stats["entries"] == [{"key": "long", "age_seconds": 20, "ttl_seconds": 100}]

    @pytest.mark.asyncio
    async def test_sweeper_task_lifecycle(self, clock):
        cache = MemoryCache(sweep_interval=0.01, clock=clock)
        cache.set("k", "v", ttl=1)
        clock.advance(5)

        cache.start_sweeper()
        assert cache.sweeper_running

        for _ in range(50):
            if len(cache) == 0:
                break
            await asyncio.sleep(0.01)
        assert len(cache) == 0

        await cache.stop_sweeper()
        assert not cache.sweeper_running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, cache):
        await cache.stop_sweeper()
        assert not cache.sweeper_running


class TestRedisCache:
    """RedisCache against a mocked client."""

    def test_set_writes_envelope_with_native_ttl(self):
        redis = MagicMock()
        cache = RedisCache(redis, clock=FakeClock(100.0))

        cache.set("availability:daily:k", {"a": 1}, ttl=120)

        key, ttl, raw = redis.setex.call_args.args
        assert key == "availability:daily:k"
        assert ttl == 120
        assert json.loads(raw) == {"data": {"a": 1}, "written_at": 100.0, "ttl": 120}

    def test_get_unwraps_envelope(self):
        redis = MagicMock()
        redis.get.return_value = json.dumps({"data": [1, 2], "written_at": 0, "ttl": 60})

        assert RedisCache(redis).get("k") == [1, 2]

    def test_get_missing(self):
        redis = MagicMock()
        redis.get.return_value = None

        assert RedisCache(redis).get("k") is None

    def test_delete_pattern_uses_scan(self):
        redis = MagicMock()
        redis.scan_iter.return_value = iter(["availability:daily:a", "availability:daily:b"])
        redis.delete.return_value = 2

        deleted = RedisCache(redis).delete_pattern("availability:daily:*")

        assert deleted == 2
        redis.scan_iter.assert_called_once_with(match="availability:daily:*")
        redis.delete.assert_called_once_with("availability:daily:a", "availability:daily:b")

    def test_delete_pattern_without_matches(self):
        redis = MagicMock()
        redis.scan_iter.return_value = iter([])

        assert RedisCache(redis).delete_pattern("availability:*") == 0
        redis.delete.assert_not_called()

    def test_stats(self):
        redis = MagicMock()
        redis.scan_iter.return_value = iter(["availability:daily:a", "availability:daily:gone"])
        redis.mget.return_value = [json.dumps({"data": 1, "written_at": 90.0, "ttl": 120}), None]

        stats = RedisCache(redis, clock=FakeClock(100.0)).stats()

        assert stats["size"] == 1
        assert stats["max_size"] is None
        assert stats["entries"][0] == {"key": "availability:daily:a", "age_seconds": 10.0, "ttl_seconds": 120}


    def test_stats_skips_unreadable_entries(self):
        redis = MagicMock()
        redis.scan_iter.return_value = iter([
            "availability:daily:a",
            "availability:legacy",
            "availability:broken",
            "availability:list",
        ])
        redis.mget.return_value = [
            json.dumps({"data": 1, "written_at": 90.0, "ttl": 120}),
            "plain string",
            json.dumps({"data": 1}),
            json.dumps([1, 2]),
        ]

        stats = RedisCache(redis, clock=FakeClock(100.0)).stats()

        assert stats["size"] == 1
        assert [e["key"] for e in stats["entries"]] == ["availability:daily:a"]


class TestBuildCache:

    def test_memory_backend_follows_config(self):
        settings = SimpleNamespace(availability_cache_backend="memory")
        cache = build_cache(settings, AvailabilityConfig(cache_max_size=5))

        assert isinstance(cache, MemoryCache)
        assert cache.max_size == 5

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_cache(SimpleNamespace(availability_cache_backend="memcached"), AvailabilityConfig())
