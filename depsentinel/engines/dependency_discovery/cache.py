"""ExpiringCache — bounded, thread-safe key/value store with per-entry TTL."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

log = structlog.get_logger("depsentinel.cache")

K = TypeVar("K")
V = TypeVar("V")

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_MAX_SIZE = 1000


@dataclass(frozen=True)
class _CacheEntry(Generic[V]):
    value: V
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class ExpiringCache(Generic[K, V]):
    """In-memory cache that avoids re-extracting metadata for unchanged archives.

    Entries expire ``ttl`` seconds after insertion; expiry is checked lazily
    on :meth:`get`.  When the cache is at ``max_size`` a :meth:`put` first
    evicts the oldest tenth of the entries by insertion time.  This is
    age-based eviction, not LRU by access.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._ttl = ttl
        self._max_size = max_size
        self._clock = clock
        self._entries: dict[K, _CacheEntry[V]] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def max_size(self) -> int:
        return self._max_size

    def get(self, key: K | None) -> V | None:
        if key is None:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: K | None, value: V | None) -> None:
        if key is None or value is None:
            return
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_size:
                self._evict_oldest()
            now = self._clock()
            self._entries[key] = _CacheEntry(value, now, now + self._ttl)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def _evict_oldest(self) -> None:
        """Drop the oldest ~10% of entries. Caller holds the lock."""
        to_remove = max(1, self._max_size // 10)
        oldest = sorted(self._entries.items(), key=lambda item: item[1].created_at)
        for key, _ in oldest[:to_remove]:
            del self._entries[key]
        log.debug("cache.evicted", removed=to_remove, remaining=len(self._entries))
