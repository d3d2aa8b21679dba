"""
Cache Utilities

In-memory LRU cache with per-entry TTL, used for hot conversation contexts.
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    """A single cache entry with expiration."""

    value: V
    expires_at: float | None = None  # clock timestamp, None = no expiration

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired at ``now``."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at


@dataclass(frozen=True)
class CacheLookup(Generic[V]):
    """Result of a lookup that keeps "stored None" apart from "absent"."""

    found: bool
    value: V | None = None


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    cleanups: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "deletes": self.deletes,
            "cleanups": self.cleanups,
            "evictions": self.evictions,
            "hit_rate": round(self.hit_rate, 4),
        }


class LRUCache(Generic[K, V]):
    """
    In-memory cache with TTL support and least-recently-used eviction.

    Recency is tracked by the order of an ``OrderedDict``: reads and re-writes move
    the key to the end, eviction pops from the front.

    Example:
        ```python
        cache = LRUCache(max_size=500, ttl=300)
        cache.set("79991234567@1", context)
        context = cache.get("79991234567@1")
        ```
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl: float | None = 300.0,
        cleanup_interval: float = 60.0,
        name: str = "lru",
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize LRU cache.

        Args:
            max_size: Maximum number of entries (0 disables storage)
            ttl: Default TTL in seconds (None = no expiration)
            cleanup_interval: Interval for the background sweep
            name: Name used in logs and stats
            clock: Monotonic time source, injectable for tests
        """
        if max_size < 0:
            raise ValueError("max_size must be >= 0")
        self.max_size = max_size
        self.ttl = ttl
        self.cleanup_interval = max(cleanup_interval, 1.0)
        self.name = name
        self._clock = clock
        self._cache: OrderedDict[K, CacheEntry[V]] = OrderedDict()
        self._stats = CacheStats()
        self._cleanup_task: asyncio.Task | None = None

    @property
    def stats(self) -> CacheStats:
        return self._stats

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: object) -> bool:
        # Raw storage check, does not touch recency or stats
        return key in self._cache

    def keys(self) -> list[K]:
        """Keys from least to most recently used."""
        return list(self._cache.keys())

    def _lookup(self, key: K) -> CacheEntry[V] | None:
        entry = self._cache.get(key)
        if entry is None:
            self._stats.misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._cache[key]
            self._stats.misses += 1
            return None

        self._cache.move_to_end(key)
        self._stats.hits += 1
        return entry

    def get(self, key: K) -> V | None:
        """
        Get a value from the cache.

        Returns None both for missing keys and for keys holding None;
        use ``get_entry`` when the difference matters.
        """
        entry = self._lookup(key)
        return entry.value if entry is not None else None

    def get_entry(self, key: K) -> CacheLookup[V]:
        """Get a value together with a found flag."""
        entry = self._lookup(key)
        if entry is None:
            return CacheLookup(found=False)
        return CacheLookup(found=True, value=entry.value)

    def set(self, key: K, value: V, ttl: float | None = None) -> None:
        """
        Set a value in the cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live in seconds (uses the cache default if not specified)
        """
        self._stats.sets += 1

        if self.max_size == 0:
            self._stats.evictions += 1
            return

        # Re-insert so an overwritten key becomes most recent
        self._cache.pop(key, None)

        while len(self._cache) >= self.max_size:
            evicted_key, _ = self._cache.popitem(last=False)
            self._stats.evictions += 1
            logger.debug(f"Cache '{self.name}' evicted key {evicted_key!r}")

        effective_ttl = ttl if ttl is not None else self.ttl
        expires_at = self._clock() + effective_ttl if effective_ttl is not None else None
        self._cache[key] = CacheEntry(value=value, expires_at=expires_at)

    def delete(self, key: K) -> bool:
        """
        Delete a key from the cache.

        Returns:
            True if key was deleted, False if not found
        """
        if key in self._cache:
            del self._cache[key]
            self._stats.deletes += 1
            return True
        return False

    def clear(self) -> None:
        """Remove every entry."""
        self._cache.clear()

    def cleanup(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._cache.items() if entry.is_expired(now)]
        for key in expired:
            del self._cache[key]

        self._stats.cleanups += 1
        if expired:
            logger.debug(f"Cache '{self.name}' cleanup removed {len(expired)} expired entries")
        return len(expired)

    def start_cleanup(self) -> None:
        """Start automatic cleanup task."""
        if self._cleanup_task is None:
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    def stop_cleanup(self) -> None:
        """Stop automatic cleanup task."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        """Background cleanup loop."""
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                self.cleanup()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Cache '{self.name}' cleanup error: {e}")

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        return {
            "name": self.name,
            "size": len(self._cache),
            "max_size": self.max_size,
            "ttl": self.ttl,
            "stats": self._stats.to_dict(),
        }
