"""
Ledger clocks

A clock is any zero-argument callable returning the current time as integer
seconds since the epoch. The engine reads it once per transaction.
"""

import threading
import time


class SystemClock:
    """Wall clock truncated to whole seconds"""

    def __call__(self) -> int:
        return int(time.time())


class FixedClock:
    """Manually driven clock for tests, simulations and replays"""

    def __init__(self, now: int = 0):
        if now < 0:
            raise ValueError("Clock cannot start before the epoch")
        self._now = now
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            return self._now

    def set(self, now: int) -> None:
        with self._lock:
            if now < self._now:
                raise ValueError("Clock cannot move backward")
            self._now = now

    def advance(self, seconds: int) -> int:
        """Move the clock forward and return the new time"""
        if seconds < 0:
            raise ValueError("Clock cannot move backward")
        with self._lock:
            self._now += seconds
            return self._now
