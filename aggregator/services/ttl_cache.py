"""
In-memory cache with per-entry fetch timestamps.
Owned by a session or client object so tests can inject their own clock.
"""
import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]


@dataclass
class CacheEntry(Generic[V]):
    value: V
    fetched_at: float


class TTLCache(Generic[V]):
    """Entries expire ``ttl_seconds`` after they were stored."""

    def __init__(self, ttl_seconds: float, clock: Optional[Clock] = None):
        self.ttl_seconds = ttl_seconds
        self.clock = clock or time.time
        self._entries: dict[Hashable, CacheEntry[V]] = {}

    def entry(self, key: Hashable) -> Optional[CacheEntry[V]]:
        """Fresh entry for ``key``; stale entries are evicted."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.fetched_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return entry

    def get(self, key: Hashable, default: Optional[V] = None) -> Optional[V]:
        entry = self.entry(key)
        return entry.value if entry else default

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = CacheEntry(value=value, fetched_at=self.clock())

    def update(self, values: dict[Hashable, V]) -> None:
        """Store several entries with one shared timestamp."""
        now = self.clock()
        for key, value in values.items():
            self._entries[key] = CacheEntry(value=value, fetched_at=now)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.entry(key) is not None

    def __len__(self) -> int:
        return len(self._entries)
