from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Optional


class RateMeter:
    """Rolling events-per-second over the last ``window`` intervals."""

    def __init__(self, window: int = 30, clock: Callable[[], float] = time.perf_counter) -> None:
        self.window = max(1, window)
        self.clock = clock
        self.intervals: Deque[float] = deque(maxlen=self.window)
        self.last_time: Optional[float] = None

    def tick(self) -> None:
        now = self.clock()
        if self.last_time is not None:
            self.intervals.append(now - self.last_time)
        self.last_time = now

    def get_rate(self) -> float:
        total = sum(self.intervals)
        if total <= 0:
            return 0.0
        return len(self.intervals) / total
