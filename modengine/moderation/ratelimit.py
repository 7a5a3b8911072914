"""Report submission rate limiting."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timedelta
from typing import Optional


class RateLimiter(ABC):
    """Decides whether a reporter may submit another report."""

    @abstractmethod
    def acquire(self, reporter_id: str, now: datetime) -> bool:
        """Consume one unit of budget. Returns False when exhausted."""

    def retry_after(self, reporter_id: str, now: datetime) -> int:
        """Seconds until the next submission would be accepted (best effort)."""
        return 0


class SlidingWindowRateLimiter(RateLimiter):
    """At most *max_reports* per reporter within any *window*.

    Reporters with no hit inside the window are forgotten, at the latest
    one window after their last submission.
    """

    def __init__(self, max_reports: int = 10, window: timedelta = timedelta(hours=1)) -> None:
        if max_reports < 1:
            raise ValueError("max_reports must be at least 1")
        self._max = max_reports
        self._window = window
        self._hits: dict[str, deque[datetime]] = {}
        self._lock = threading.Lock()
        self._last_prune: Optional[datetime] = None

    def __len__(self) -> int:
        """Number of reporters currently tracked."""
        return len(self._hits)

    def _evict(self, hits: deque[datetime], now: datetime) -> None:
        cutoff = now - self._window
        while hits and hits[0] <= cutoff:
            hits.popleft()

    def _prune(self, now: datetime) -> None:
        if self._last_prune is not None and now - self._last_prune < self._window:
            return
        self._last_prune = now
        for reporter_id in list(self._hits):
            hits = self._hits[reporter_id]
            self._evict(hits, now)
            if not hits:
                del self._hits[reporter_id]

    def acquire(self, reporter_id: str, now: datetime) -> bool:
        with self._lock:
            self._prune(now)
            hits = self._hits.setdefault(reporter_id, deque())
            self._evict(hits, now)
            if len(hits) >= self._max:
                return False
            hits.append(now)
            return True

    def retry_after(self, reporter_id: str, now: datetime) -> int:
        with self._lock:
            hits = self._hits.get(reporter_id)
            if not hits or len(hits) < self._max:
                return 0
            return max(0, int((hits[0] + self._window - now).total_seconds()))
