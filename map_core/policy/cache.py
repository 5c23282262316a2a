"""
In-memory TTL cache for allow-list lookups.

Entries are (value, fetched_at) pairs invalidated purely by age. Fetch errors
are never cached. Concurrent misses on the same key may fetch twice; the lock
only guards the dict.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    def __init__(self, ttl_seconds: float = 60.0, clock: Optional[Callable[[], float]] = None):
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: Dict[Hashable, Tuple[T, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[T]:
        """Fresh cached value or None; a stale entry is dropped."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, fetched_at = entry
            if self._clock() - fetched_at >= self.ttl_seconds:
                del self._entries[key]
                return None
        return value

    def put(self, key: Hashable, value: T) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())

    def get_or_fetch(self, key: Hashable, fetcher: Callable[[], T]) -> T:
        """Return the cached value, or call fetcher once and cache its result."""
        value = self.get(key)
        if value is not None:
            return value
        value = fetcher()
        self.put(key, value)
        return value

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
