"""Tests for the TTL + LRU response cache."""

from giftwise.common.cache import ResponseCache
from tests.fakes import build_spec


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestResponseCache:
    def test_key_depends_on_namespace_and_spec(self):
        spec = build_spec(keywords=["tech"])
        same = build_spec(keywords=["tech"])
        other = build_spec(keywords=["travel"])

        assert ResponseCache.make_key("amazon", spec) == ResponseCache.make_key("amazon", same)
        assert ResponseCache.make_key("amazon", spec) != ResponseCache.make_key("shein", spec)
        assert ResponseCache.make_key("amazon", spec) != ResponseCache.make_key("amazon", other)

    def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        cache = ResponseCache(ttl_seconds=60, clock=clock)
        cache.set("k", ["value"])

        clock.now += 59
        assert cache.get("k") == ["value"]

        clock.now += 2
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_least_recently_used_is_evicted(self):
        cache = ResponseCache(max_entries=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert len(cache) == 2

    def test_hit_and_miss_counters(self):
        cache = ResponseCache()
        cache.get("missing")
        cache.set("present", [])
        cache.get("present")

        assert (cache.hits, cache.misses) == (1, 1)

    def test_empty_results_are_cached(self):
        cache = ResponseCache()
        cache.set("k", [])
        assert cache.get("k") == []
