"""Bounded result cache with TTL expiry and priority-based eviction.

Entries expire a fixed time after insertion regardless of how often they are
read. Each read nudges the entry's priority up, so frequently used entries
survive eviction; when the cache is full the lowest quartile by
(priority, last access) is dropped before the new entry goes in.

Usage:
    from threadhub.perf.cache import CacheManager

    cache = CacheManager(max_size=1000)
    cache.put("thread_context_abc", result, priority=2.0)
    hit = cache.get("thread_context_abc")  # None on miss
    hit = cache.get("thread_context_abc", MISS)  # when None is a valid result

The cache is shared between the foreground (get/put) and the background
sweep, so all mutation happens under one lock. Two writers racing on the
same key resolve as last-write-wins.
"""

from __future__ import annotations

import json
import math
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from threadhub.core.errors import NotFoundError
from threadhub.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
PRIORITY_BOOST = 0.1
MAX_PRIORITY = 10.0
EVICTION_FRACTION = 0.25

# Returned by get() on a miss when passed as the default
MISS: Any = object()


@dataclass(slots=True)
class CacheEntry[T]:
    """A cached value with access tracking.

    Attributes:
        value: Cached value
        created_at: Insertion time (clock seconds)
        last_access: Time of the latest hit or insertion
        access_count: Number of hits, plus one for the insertion
        priority: Eviction rank; rises on every hit
        ttl: Seconds after created_at at which the entry expires
    """

    value: T
    created_at: float
    last_access: float
    access_count: int
    priority: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl


@dataclass(frozen=True, slots=True)
class CacheStats:
    """Point-in-time cache statistics.

    Attributes:
        size: Number of entries
        max_size: Current capacity
        memory_usage_bytes: Approximate size of cached values
        hit_rate_pct: Lifetime hits / lookups, in percent
        hits: Lifetime hits
        misses: Lifetime misses (absent or expired)
        evictions: Entries dropped to make room
        expirations: Entries dropped because their TTL passed
        oldest_entry: Earliest created_at, or None when empty
        newest_entry: Latest created_at, or None when empty
    """

    size: int
    max_size: int
    memory_usage_bytes: int
    hit_rate_pct: float
    hits: int
    misses: int
    evictions: int
    expirations: int
    oldest_entry: float | None
    newest_entry: float | None


def estimate_size(value: Any) -> int:
    """Approximate in-memory size: serialized length at two bytes per character."""
    try:
        serialized = json.dumps(value, default=str)
    except (TypeError, ValueError):
        serialized = repr(value)
    return len(serialized) * 2


class CacheManager:
    """TTL + priority bounded cache.

    Attributes:
        ttl_seconds: Time-to-live applied to new entries
        clock: Returns the current time in seconds
    """

    def __init__(
        self,
        max_size: int = 1000,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self._max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, CacheEntry[Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    @max_size.setter
    def max_size(self, value: int) -> None:
        """Resize; an over-full cache shrinks on the next insert."""
        if value < 1:
            raise ValueError(f"max_size must be at least 1, got {value}")
        with self._lock:
            self._max_size = value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if absent or expired.

        Pass ``MISS`` as the default to tell a cached None from a miss. An
        expired entry is removed on this access.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return default

            now = self.clock()
            if entry.is_expired(now):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return default

            entry.access_count += 1
            entry.last_access = now
            entry.priority = min(entry.priority + PRIORITY_BOOST, MAX_PRIORITY)
            self._hits += 1
            return entry.value

    def put(self, key: str, value: Any, priority: float = 1.0) -> None:
        """Insert or replace an entry, evicting the lowest quartile when full."""
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_size:
                self._evict(len(self._entries) - self._max_size + 1)

            now = self.clock()
            self._entries[key] = CacheEntry(
                value=value,
                created_at=now,
                last_access=now,
                access_count=1,
                priority=priority,
                ttl=self.ttl_seconds,
            )

    def get_entry(self, key: str) -> CacheEntry[Any]:
        """Copy of an entry without counting it as a read.

        Raises:
            NotFoundError: If the key is not cached
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise NotFoundError("cache_key", key)
            return replace(entry)

    def purge_expired(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        with self._lock:
            now = self.clock()
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._expirations += len(expired)

        if expired:
            logger.debug("cache_expired_purged", removed=len(expired))
        return len(expired)

    def clear(self) -> None:
        """Drop all entries immediately."""
        with self._lock:
            self._entries.clear()

    def estimate_memory_usage(self) -> int:
        with self._lock:
            values = [entry.value for entry in self._entries.values()]
        return sum(estimate_size(value) for value in values)

    def stats(self) -> CacheStats:
        with self._lock:
            created = [entry.created_at for entry in self._entries.values()]
            lookups = self._hits + self._misses
            size = len(self._entries)
            hits, misses = self._hits, self._misses
            evictions, expirations = self._evictions, self._expirations
            max_size = self._max_size

        return CacheStats(
            size=size,
            max_size=max_size,
            memory_usage_bytes=self.estimate_memory_usage(),
            hit_rate_pct=(hits / lookups * 100) if lookups else 0.0,
            hits=hits,
            misses=misses,
            evictions=evictions,
            expirations=expirations,
            oldest_entry=min(created) if created else None,
            newest_entry=max(created) if created else None,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _evict(self, minimum: int) -> None:
        """Drop the lowest quartile by (priority, last access); caller holds the lock."""
        count = max(math.floor(self._max_size * EVICTION_FRACTION), minimum)
        ranked = sorted(
            self._entries.items(),
            key=lambda item: (item[1].priority, item[1].last_access),
        )
        for key, _ in ranked[:count]:
            del self._entries[key]
        self._evictions += min(count, len(ranked))

        logger.debug("cache_evicted", removed=min(count, len(ranked)), max_size=self._max_size)
