# tests/test_observation_cache.py
"""Tests for the short-TTL observation cache."""

from chuk_ai_browser_agent.memory.observation_cache import ObservationCache


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestObservationCache:
    def test_page_key_includes_kind(self):
        assert ObservationCache.page_key(1, "https://a") != ObservationCache.page_key(1, "https://a", kind="text")
        assert ObservationCache.page_key(None, "https://a") == "structure|-|https://a"

    def test_hit_within_ttl(self):
        clock = FakeClock()
        cache = ObservationCache(ttl_seconds=3.0, clock=clock)
        cache.put("k", {"tree": 1})
        clock.now += 2.9
        assert cache.get("k") == {"tree": 1}
        assert cache.get_stats().hits == 1

    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = ObservationCache(ttl_seconds=3.0, clock=clock)
        cache.put("k", {"tree": 1})
        clock.now += 3.5
        assert cache.get("k") is None
        stats = cache.get_stats()
        assert stats.expirations == 1
        assert stats.misses == 1
        assert cache.size == 0

    def test_evicts_oldest_when_full(self):
        cache = ObservationCache(max_entries=2, clock=FakeClock())
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        assert cache.get("a") is None
        assert cache.get("c") == 3
        assert cache.get_stats().evictions == 1

    def test_invalidate_one_and_all(self):
        cache = ObservationCache(clock=FakeClock())
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.invalidate("a") == 1
        assert cache.invalidate("missing") == 0
        assert cache.invalidate() == 1
        assert cache.size == 0

    def test_clear_resets_stats(self):
        cache = ObservationCache(clock=FakeClock())
        cache.put("a", 1)
        cache.get("a")
        cache.clear()
        stats = cache.get_stats()
        assert stats.hits == 0
        assert stats.size == 0

    def test_hit_rate(self):
        cache = ObservationCache(clock=FakeClock())
        cache.put("a", 1)
        cache.get("a")
        cache.get("b")
        assert cache.get_stats().hit_rate == 0.5
