"""Tests for parcelspine.core.cache - TTL and LRU behaviour with an injected clock."""

import pytest

from parcelspine.core.cache import CacheStore
from parcelspine.core.clock import FixedClock


@pytest.fixture
def clock():
    return FixedClock("2024-01-01T00:00:00Z")


class TestCacheStore:
    def test_set_and_get(self, clock):
        cache = CacheStore(ttl_seconds=30, clock=clock)
        cache.set("k", {"a": 1})
        assert cache.get("k") == {"a": 1}
        assert cache.exists("k")

    def test_missing_key(self, clock):
        cache = CacheStore(ttl_seconds=30, clock=clock)
        assert cache.get("nope") is None
        assert not cache.exists("nope")

    def test_expires_at_ttl(self, clock):
        cache = CacheStore(ttl_seconds=30, clock=clock)
        cache.set("k", "v")
        clock.advance(seconds=29.9)
        assert cache.get("k") == "v"
        clock.advance(seconds=0.1)
        assert cache.get("k") is None
        assert cache.size() == 0

    def test_entry_carries_timestamp(self, clock):
        cache = CacheStore(ttl_seconds=30, clock=clock)
        cache.set("k", "v")
        entry = cache.entry("k")
        assert entry.value == "v"
        assert entry.timestamp == clock.now()

    def test_overwrite_restamps(self, clock):
        cache = CacheStore(ttl_seconds=30, clock=clock)
        cache.set("k", 1)
        clock.advance(seconds=20)
        cache.set("k", 2)
        clock.advance(seconds=20)
        assert cache.get("k") == 2

    def test_lru_eviction(self, clock):
        cache = CacheStore(ttl_seconds=30, max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")  # a is now most recently used
        cache.set("c", 3)
        assert cache.keys() == ["a", "c"]
        assert cache.get("b") is None

    def test_delete_and_clear(self, clock):
        cache = CacheStore(ttl_seconds=30, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.delete("a")
        cache.delete("missing")
        assert cache.keys() == ["b"]
        cache.clear()
        assert cache.size() == 0

    @pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"ttl_seconds": 5, "max_size": 0}])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            CacheStore(**kwargs)
