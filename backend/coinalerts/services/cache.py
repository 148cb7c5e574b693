"""TTL cache for provider responses.

Entries are evicted lazily: expiry is checked when a key is read, there is
no background sweep. The cache holds no TTL policy of its own; callers pick
a TTL per data class when they store a value.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A cached payload with its storage time and time-to-live."""
    key: str
    payload: Any
    stored_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl


@dataclass
class CacheStats:
    """Counters for cache observability."""
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0


class BaseCache(ABC):
    """Interface the aggregator depends on, so tests can swap in a fake."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on a miss."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store a value for ttl seconds."""
        pass

    def delete(self, key: str) -> None:
        pass

    def clear(self) -> None:
        pass


class TTLCache(BaseCache):
    """In-memory keyed store with per-entry TTL.

    A lock guards the map so threaded callers cannot corrupt it. On the
    asyncio event loop it is never contended.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._stats = CacheStats()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._stats.evictions += 1
                self._stats.misses += 1
                logger.debug(f"Cache entry expired: {key}")
                return None
            self._stats.hits += 1
            return entry.payload

    def set(self, key: str, value: Any, ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                payload=value,
                stored_at=self._clock(),
                ttl=ttl,
            )

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry without touching stats or evicting."""
        with self._lock:
            return self._entries.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                size=len(self._entries),
            )

    def __len__(self) -> int:
        return len(self._entries)


# Global instance shared by all provider calls
market_cache = TTLCache()
