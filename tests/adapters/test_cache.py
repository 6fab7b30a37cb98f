"""Tests for the in-memory TTL cache."""

import pytest

from clinical_gateway.adapters.cache import InMemoryTTLCache


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return InMemoryTTLCache(clock=clock)


class TestInMemoryTTLCache:
    """Tests for InMemoryTTLCache."""

    def test_miss_then_hit(self, cache):
        """A stored payload is returned until it expires."""
        assert cache.get("conditions", "k") is None

        payload = object()
        cache.set("conditions", "k", payload, ttl_seconds=30)

        assert cache.get("conditions", "k") is payload

    def test_entry_expires(self, cache, clock):
        """Entries are dead once the clock reaches their expiry."""
        cache.set("conditions", "k", "v", ttl_seconds=30)

        clock.now = 29.9
        assert cache.get("conditions", "k") == "v"

        clock.now = 30.0
        assert cache.get("conditions", "k") is None

    def test_namespaces_are_isolated(self, cache):
        cache.set("conditions", "k", "a", ttl_seconds=30)
        assert cache.get("procedures", "k") is None

    def test_set_replaces(self, cache):
        cache.set("conditions", "k", "a", ttl_seconds=30)
        cache.set("conditions", "k", "b", ttl_seconds=30)
        assert cache.get("conditions", "k") == "b"

    def test_expired_entries_swept_at_capacity(self, clock):
        """Reaching capacity sweeps expired entries from the namespace."""
        cache = InMemoryTTLCache(clock=clock, max_entries_per_namespace=2)
        cache.set("n", "a", 1, ttl_seconds=1)
        cache.set("n", "b", 2, ttl_seconds=1)
        clock.now = 5

        cache.set("n", "c", 3, ttl_seconds=1)

        assert cache.get_statistics()["namespaces"] == {"n": 1}

    def test_oldest_live_entry_evicted_at_capacity(self, clock):
        """A namespace full of live entries stays at its bound."""
        cache = InMemoryTTLCache(clock=clock, max_entries_per_namespace=2)
        cache.set("n", "a", 1, ttl_seconds=60)
        cache.set("n", "b", 2, ttl_seconds=60)

        cache.set("n", "c", 3, ttl_seconds=60)

        stats = cache.get_statistics()
        assert stats["namespaces"] == {"n": 2}
        assert stats["evictions"] == 1
        assert cache.get("n", "a") is None
        assert cache.get("n", "c") == 3

    def test_replacing_a_key_does_not_evict(self, clock):
        cache = InMemoryTTLCache(clock=clock, max_entries_per_namespace=2)
        cache.set("n", "a", 1, ttl_seconds=60)
        cache.set("n", "b", 2, ttl_seconds=60)

        cache.set("n", "a", 10, ttl_seconds=60)

        assert cache.get_statistics()["evictions"] == 0
        assert cache.get("n", "b") == 2

    def test_statistics(self, cache):
        cache.set("conditions", "k", "v", ttl_seconds=30)
        cache.get("conditions", "k")
        cache.get("conditions", "missing")

        stats = cache.get_statistics()

        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["sets"] == 1
        assert stats["entries"] == 1
        assert stats["namespaces"] == {"conditions": 1}

    def test_clear(self, cache):
        cache.set("conditions", "k", "v", ttl_seconds=30)
        cache.clear()
        assert cache.get("conditions", "k") is None
