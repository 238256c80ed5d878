"""LRU Cache — bounded in-memory cache with time-based expiration."""

import time
from collections import OrderedDict
from typing import Any, Callable, Optional


class LRUCache:
    """Bounded in-memory cache with least-recently-used eviction and per-key TTL.

    Reads refresh recency; expired entries are dropped lazily on access and
    when a write needs room. All operations are synchronous so concurrent
    coroutines on the same event loop never observe a half-applied update.
    """

    def __init__(
        self,
        max_entries: int = 1000,
        default_ttl: Optional[float] = None,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._max_entries = max_entries
        self._default_ttl = default_ttl
        self._timer = timer
        self._store: OrderedDict[str, tuple[Any, Optional[float]]] = OrderedDict()  # key -> (value, expires_at)

    def get(self, key: str) -> Any | None:
        """Get a cached value if it exists and hasn't expired."""
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._timer() > expires_at:
            del self._store[key]
            return None
        self._store.move_to_end(key)
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Set a cached value with optional custom TTL."""
        ttl = ttl if ttl is not None else self._default_ttl
        expires_at = self._timer() + ttl if ttl is not None else None
        if key in self._store:
            del self._store[key]
        else:
            self._evict_if_full()
        self._store[key] = (value, expires_at)

    def invalidate(self, key: str) -> None:
        """Remove a specific key from the cache."""
        self._store.pop(key, None)

    def clear(self) -> None:
        """Clear all cached entries."""
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    def _evict_if_full(self) -> None:
        """Evict expired entries first, then least recently used if still full."""
        if len(self._store) < self._max_entries:
            return

        now = self._timer()
        expired_keys = [
            k for k, (_, exp) in self._store.items() if exp is not None and now > exp
        ]
        for k in expired_keys:
            del self._store[k]

        while len(self._store) >= self._max_entries:
            self._store.popitem(last=False)
