"""
In-memory TTL cache for fetched facts.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


@dataclass
class CacheEntry:
    key: Hashable
    value: Any
    expires_at: float


class TTLCache:
    """
    Freshness-bounded key/value store.

    Entries expire exactly `ttl` seconds after `set`. Expiry is lazy: an
    expired entry is dropped by the `get` that finds it, or by `sweep`.
    All operations hold one short lock and never raise, so fetchers share
    a single instance without locking of their own.
    """

    def __init__(
        self,
        default_ttl: float = 15.0,
        max_entries: Optional[int] = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock
        self._store: Dict[Hashable, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Hashable) -> Tuple[Any, bool]:
        now = self._clock()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._misses += 1
                return None, False
            if now >= entry.expires_at:
                del self._store[key]
                self._misses += 1
                return None, False
            self._hits += 1
            return entry.value, True

    def set(self, key: Hashable, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        with self._lock:
            if ttl <= 0:
                self._store.pop(key, None)
                return
            if key not in self._store and self.max_entries is not None:
                if len(self._store) >= self.max_entries:
                    self._purge_expired(now)
                while len(self._store) >= self.max_entries:
                    oldest = min(self._store.values(), key=lambda e: e.expires_at)
                    del self._store[oldest.key]
                    self._evictions += 1
            self._store[key] = CacheEntry(key=key, value=value, expires_at=now + ttl)

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed."""
        with self._lock:
            return self._purge_expired(self._clock())

    def _purge_expired(self, now: float) -> int:
        expired = [k for k, e in self._store.items() if now >= e.expires_at]
        for k in expired:
            del self._store[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }
