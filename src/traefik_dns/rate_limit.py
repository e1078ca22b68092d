"""Fixed-window rate limiter for outbound DNS provider API calls.

The window is clocked in fixed ``period`` steps from the moment the limiter is
created. When a window is exhausted and its reset instant has passed, the
window advances by exactly one period (not to "now + period"), so idle time
never banks extra capacity. Like any fixed window this can admit up to
``2 * capacity`` calls around a boundary.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Callable

NANOS_PER_SECOND = 1_000_000_000


class RateLimit:
    """Allow at most ``capacity`` permits per ``period`` seconds.

    All arithmetic is done on integer nanoseconds measured from an epoch
    captured at construction.
    """

    def __init__(
        self,
        capacity: int,
        period: float,
        clock: Callable[[], int] = time.monotonic_ns,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        period_ns = int(period * NANOS_PER_SECOND)
        if period_ns <= 0:
            raise ValueError("period must be positive")

        self._capacity = capacity
        self._period = period_ns
        self._clock = clock
        self._epoch = clock()

        self._lock = threading.Lock()
        self._used = 0
        # Reset instant, in nanoseconds since the epoch.
        self._reset = period_ns

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def period(self) -> float:
        return self._period / NANOS_PER_SECOND

    @property
    def remaining(self) -> int:
        """Permits left in the current window (without advancing it)."""
        with self._lock:
            return max(0, self._capacity - self._used)

    def _elapsed(self) -> int:
        return self._clock() - self._epoch

    def reset_in(self) -> float:
        """Seconds until the current window's reset instant, never negative."""
        with self._lock:
            reset = self._reset
        return max(0, reset - self._elapsed()) / NANOS_PER_SECOND

    def try_acquire(self) -> bool:
        """Take one permit if available. Never blocks."""
        with self._lock:
            if self._used < self._capacity:
                self._used += 1
                return True

            if self._elapsed() > self._reset:
                # The permit that advances the window counts against it.
                self._used = 1
                self._reset += self._period
                return True

            return False

    async def acquire(self) -> None:
        """Wait until a permit is granted.

        Waiters sleep until the current reset instant and then race on
        ``try_acquire``; there is no ordering between them.
        """
        while not self.try_acquire():
            await asyncio.sleep(self.reset_in())
