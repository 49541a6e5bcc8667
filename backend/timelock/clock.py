import threading
import time
from typing import Optional


class SystemClock:
    """Wall-clock seconds, the default timestamp source."""

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """Settable clock for tests and local demos; only moves forward."""

    def __init__(self, start: Optional[int] = None):
        self._now = int(time.time()) if start is None else int(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def increase(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("clock cannot move backwards")
        with self._lock:
            self._now += int(seconds)
            return self._now

    def increase_to(self, ts: int) -> int:
        with self._lock:
            if ts < self._now:
                raise ValueError(f"timestamp {ts} is before current time {self._now}")
            self._now = int(ts)
            return self._now
