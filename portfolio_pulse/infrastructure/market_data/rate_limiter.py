"""
Sliding-window rate limiter shared by all fetchers.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Dict


class RateLimiter:
    """
    Admit at most `max_requests` calls in any `window_seconds` span.

    Keeps a log of admission timestamps; a slot frees up exactly
    `window_seconds` after the admission that used it.
    """

    def __init__(
        self,
        max_requests: int = 300,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._admitted: Deque[float] = deque()
        self._lock = threading.Lock()
        self._admitted_total = 0
        self._rejected_total = 0

    def _evict(self, now: float) -> None:
        while self._admitted and now - self._admitted[0] >= self.window_seconds:
            self._admitted.popleft()

    def try_acquire(self) -> bool:
        now = self._clock()
        with self._lock:
            self._evict(now)
            if len(self._admitted) >= self.max_requests:
                self._rejected_total += 1
                return False
            self._admitted.append(now)
            self._admitted_total += 1
            return True

    def time_until_available(self) -> float:
        """Seconds until `try_acquire` could next succeed (0 if it would now)."""
        now = self._clock()
        with self._lock:
            self._evict(now)
            if len(self._admitted) < self.max_requests:
                return 0.0
            return max(0.0, self._admitted[0] + self.window_seconds - now)

    def in_window(self) -> int:
        now = self._clock()
        with self._lock:
            self._evict(now)
            return len(self._admitted)

    def stats(self) -> Dict[str, float]:
        return {
            "max_requests": self.max_requests,
            "window_seconds": self.window_seconds,
            "in_window": self.in_window(),
            "admitted_total": self._admitted_total,
            "rejected_total": self._rejected_total,
        }
