"""
Result Cache

In-memory TTL cache for built contexts and optimization results.
Thread-safe, bounded, with an optional background sweep thread.
"""

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float | None


class ResultCache:
    """
    Bounded TTL cache.

    Features:
    - Oldest-by-creation eviction when max_size is reached
    - Per-key TTL, last write wins
    - Lock-guarded operations
    - Periodic sweep of expired entries on a daemon thread
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 600,
        sweep_interval: float = 300,
        namespace: str = "context",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize result cache.

        Args:
            max_size: Maximum number of entries
            default_ttl: Default TTL in seconds (0 = no expiry)
            sweep_interval: Seconds between background sweeps
            namespace: Cache key namespace/prefix
            clock: Monotonic time source
        """
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")

        self.max_size = max_size
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self.namespace = namespace
        self._clock = clock

        # Insertion order == creation order; overwrites move to the end
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0
        self._evictions = 0
        self._expirations = 0

        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    def _make_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return entry.expires_at is not None and now >= entry.expires_at

    def get(self, key: str) -> Any | None:
        """Retrieve a live value; None on miss or expiry."""
        cache_key = self._make_key(key)
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is None:
                self._misses += 1
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[cache_key]
                self._expirations += 1
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def put(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value, evicting the oldest entry when full."""
        if ttl is None:
            ttl = self.default_ttl
        cache_key = self._make_key(key)

        with self._lock:
            now = self._clock()
            if cache_key in self._entries:
                del self._entries[cache_key]
            elif len(self._entries) >= self.max_size:
                evicted_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug(f"Evicted key from result cache: {evicted_key}")

            self._entries[cache_key] = CacheEntry(
                key=cache_key,
                value=value,
                created_at=now,
                expires_at=now + ttl if ttl > 0 else None,
            )
            self._sets += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(self._make_key(key), None) is None:
                return False
            self._deletes += 1
            return True

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {count} entries from result cache")
        return count

    def sweep(self) -> int:
        """Remove expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)

        if expired:
            logger.debug("Swept expired cache entries", extra={"removed": len(expired)})
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "namespace": self.namespace,
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 2) if total else 0.0,
                "sets": self._sets,
                "deletes": self._deletes,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "sweeper_running": self._sweeper is not None and self._sweeper.is_alive(),
            }

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Result cache sweep failed: {e}", exc_info=True)

    def start(self) -> None:
        """Start the background sweep thread (idempotent)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="result-cache-sweeper", daemon=True)
        self._sweeper.start()
        logger.debug("Started result cache sweeper", extra={"interval": self.sweep_interval})

    def close(self) -> None:
        """Stop the sweep thread."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None

    def __enter__(self) -> "ResultCache":
        self.start()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
