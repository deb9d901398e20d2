"""
Sliding-window rate limiter for outbound place-provider calls.

Each provider owns one limiter.  A request is allowed when fewer than
``requests_per_minute`` requests were recorded for the same identifier in
the last 60 seconds.  Single event-loop use only; no locking.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable

_WINDOW_SECONDS = 60.0


class SlidingWindowRateLimiter:
    """Per-identifier request counter over a rolling one-minute window."""

    def __init__(
        self,
        requests_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        self.requests_per_minute = requests_per_minute
        self._clock = clock
        self._requests: dict[str, deque[float]] = {}

    def _prune(self, identifier: str, now: float) -> deque[float]:
        timestamps = self._requests.setdefault(identifier, deque())
        window_start = now - _WINDOW_SECONDS
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()
        return timestamps

    def is_allowed(self, identifier: str = "global") -> bool:
        """Record a request and return True, or return False if the window
        is already full."""
        now = self._clock()
        timestamps = self._prune(identifier, now)
        if len(timestamps) >= self.requests_per_minute:
            return False
        timestamps.append(now)
        return True

    def remaining(self, identifier: str = "global") -> int:
        now = self._clock()
        timestamps = self._prune(identifier, now)
        return max(0, self.requests_per_minute - len(timestamps))

    def cleanup(self) -> None:
        """Drop identifiers with no requests in the current window."""
        now = self._clock()
        for identifier in list(self._requests):
            if not self._prune(identifier, now):
                del self._requests[identifier]
