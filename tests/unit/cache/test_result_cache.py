"""
Context Engine - Result Cache Tests

Tests TTL expiry, capacity eviction, sweeping, statistics and key construction.
Uses a fake monotonic clock; no sleeping.
"""

import threading
import time

import pytest

from context_engine.cache import ResultCache, make_cache_key, snapshot_fingerprint


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestResultCache:
    """Test suite for ResultCache."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def cache(self, clock: FakeClock) -> ResultCache:
        return ResultCache(max_size=3, default_ttl=600, sweep_interval=300, namespace="test", clock=clock)

    def test_initialization(self, cache: ResultCache) -> None:
        """Test cache initialization with custom parameters."""
        assert cache.max_size == 3
        assert cache.default_ttl == 600
        stats = cache.get_stats()
        assert stats["size"] == 0
        assert stats["hits"] == 0
        assert stats["misses"] == 0

    def test_invalid_size(self) -> None:
        """Test that a zero-capacity cache is rejected."""
        with pytest.raises(ValueError):
            ResultCache(max_size=0)

    def test_round_trip_within_ttl(self, cache: ResultCache, clock: FakeClock) -> None:
        """Test that a value is served until its TTL elapses."""
        cache.put("k", {"v": 1})
        clock.advance(599)
        assert cache.get("k") == {"v": 1}

        clock.advance(1)
        assert cache.get("k") is None

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["expirations"] == 1

    def test_miss_is_none(self, cache: ResultCache) -> None:
        """Test that a miss is an ordinary None."""
        assert cache.get("missing") is None
        assert cache.get_stats()["misses"] == 1

    def test_custom_ttl(self, cache: ResultCache, clock: FakeClock) -> None:
        """Test a per-entry TTL."""
        cache.put("short", "v", ttl=10)
        clock.advance(11)
        assert cache.get("short") is None

    def test_zero_ttl_never_expires(self, cache: ResultCache, clock: FakeClock) -> None:
        """Test that ttl=0 disables expiry."""
        cache.put("forever", "v", ttl=0)
        clock.advance(10**9)
        assert cache.get("forever") == "v"

    def test_evicts_oldest_when_full(self, cache: ResultCache, clock: FakeClock) -> None:
        """Test oldest-by-creation eviction."""
        for key in ("a", "b", "c"):
            cache.put(key, key)
            clock.advance(1)

        # Reading does not refresh creation time
        assert cache.get("a") == "a"
        cache.put("d", "d")

        assert cache.get("a") is None
        assert cache.get("b") == "b"
        assert cache.get("d") == "d"
        assert cache.get_stats()["evictions"] == 1

    def test_overwrite_resets_creation(self, cache: ResultCache, clock: FakeClock) -> None:
        """Test last-write-wins with a fresh creation time."""
        cache.put("a", 1)
        cache.put("b", 2)
        cache.put("c", 3)
        clock.advance(500)
        cache.put("a", 10)
        cache.put("d", 4)

        assert cache.get("a") == 10
        assert cache.get("b") is None
        clock.advance(200)
        # a was rewritten at t+500, so it outlives c
        assert cache.get("a") == 10
        assert cache.get("c") is None

    def test_delete_and_clear(self, cache: ResultCache) -> None:
        """Test explicit removal."""
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.clear() == 1
        assert len(cache) == 0

    def test_sweep_removes_expired(self, cache: ResultCache, clock: FakeClock) -> None:
        """Test that sweep drops only expired entries."""
        cache.put("old", 1, ttl=10)
        cache.put("new", 2)
        clock.advance(11)
        assert cache.sweep() == 1
        assert len(cache) == 1
        assert cache.get("new") == 2

    def test_sweeper_thread_lifecycle(self) -> None:
        """Test that the background sweeper starts, sweeps and stops."""
        cache = ResultCache(default_ttl=0.01, sweep_interval=0.01)
        cache.put("k", "v")
        with cache:
            assert cache.get_stats()["sweeper_running"]
            deadline = time.monotonic() + 2
            while len(cache) and time.monotonic() < deadline:
                time.sleep(0.01)
        assert len(cache) == 0
        assert not cache.get_stats()["sweeper_running"]

    def test_concurrent_puts(self) -> None:
        """Test lock-guarded access from several threads."""
        cache = ResultCache(max_size=50)

        def writer(prefix: str) -> None:
            for i in range(100):
                cache.put(f"{prefix}-{i}", i)

        threads = [threading.Thread(target=writer, args=(f"t{n}",)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        stats = cache.get_stats()
        assert stats["size"] == 50
        assert stats["sets"] == 400
        assert stats["evictions"] == 350


class TestCacheKeys:
    """Test suite for cache key construction."""

    def test_key_is_stable(self) -> None:
        """Test that flag order does not matter."""
        first = make_cache_key("u", "light", "q", a=1, b=True)
        second = make_cache_key("u", "light", "q", b=True, a=1)
        assert first == second
        assert len(first) == 64

    def test_query_fingerprint_truncated(self) -> None:
        """Test that only the first 50 query characters take part."""
        base = "x" * 50
        assert make_cache_key("u", "full", base + "tail one") == make_cache_key("u", "full", base + "tail two")
        assert make_cache_key("u", "full", "a") != make_cache_key("u", "full", "b")

    def test_flags_change_key(self) -> None:
        """Test that differing options give differing keys."""
        assert make_cache_key("u", "full", None, max_tokens=100) != make_cache_key("u", "full", None, max_tokens=200)

    def test_snapshot_fingerprint(self, mixed_snapshot) -> None:
        """Test that content changes alter the fingerprint."""
        same = mixed_snapshot.evolve()
        changed = mixed_snapshot.without_items(["turn-1"])
        assert snapshot_fingerprint(mixed_snapshot) == snapshot_fingerprint(same)
        assert snapshot_fingerprint(mixed_snapshot) != snapshot_fingerprint(changed)
