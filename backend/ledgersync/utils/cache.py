"""Small TTL cache used for aggregator keys and institution names."""

import threading
import time
from typing import Any, Callable, Hashable


class TTLCache:
    """In-memory cache whose entries expire ``ttl_seconds`` after being set.

    Instances are created by whoever wires the service together and
    injected into it, so tests can hand in their own cache (or clock).
    """

    def __init__(
        self,
        ttl_seconds: float,
        maxsize: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.maxsize = maxsize
        self._clock = clock
        self._entries: dict[Hashable, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.maxsize:
                self._evict()
            self._entries[key] = (value, self._clock() + self.ttl_seconds)

    def get_or_set(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        """Return the cached value, computing and storing it on a miss."""
        sentinel = object()
        value = self.get(key, sentinel)
        if value is sentinel:
            value = factory()
            self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _evict(self) -> None:
        # Drop expired entries first, then the one closest to expiry
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self.maxsize:
            oldest = min(self._entries, key=lambda k: self._entries[k][1])
            del self._entries[oldest]
