from __future__ import annotations

import threading
import time
from collections.abc import Callable

"""Minimum-spacing rate limiter shared by every outbound routing call.

One instance is owned by the routing client; everything that talks to the
provider (geocode, directions, matrix, and each retry attempt) goes through
wait() first, so concurrent route computations still honour a single spacing.
"""

__all__ = [
    "RateLimiter",
]


class RateLimiter:
    def __init__(
        self,
        min_interval: float = 1.5,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None
        self._lock = threading.Lock()

    @classmethod
    def unlimited(cls) -> RateLimiter:
        """Zero-delay limiter (tests, offline tools)."""
        return cls(0.0)

    def wait(self) -> float:
        """Block until the spacing since the previous call has elapsed; return seconds slept."""
        with self._lock:
            slept = 0.0
            if self._last_call is not None and self.min_interval > 0:
                remaining = self.min_interval - (self._clock() - self._last_call)
                if remaining > 0:
                    self._sleep(remaining)
                    slept = remaining
            self._last_call = self._clock()
            return slept
