"""
multimind: Engine bookkeeping and the sliding rate-limit window.

``RequestStats`` is owned by a single ``RequestQueueEngine`` and replaced
wholesale on start/stop.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from multimind.queue import RequestQueue


class RateWindow:
    """Timestamps of attempts made inside the last ``window`` seconds.

    Example::

        window = RateWindow(limit=50, window=60.0)
        if window.has_capacity():
            window.record()
    """

    def __init__(
        self,
        limit: int = 50,
        window: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._timestamps: deque[float] = deque()

    def prune(self) -> None:
        """Forget timestamps that have aged out of the window."""
        now = self._clock()
        while self._timestamps and now - self._timestamps[0] >= self.window:
            self._timestamps.popleft()

    def record(self) -> None:
        self._timestamps.append(self._clock())

    def has_capacity(self) -> bool:
        self.prune()
        return len(self._timestamps) < self.limit

    @property
    def count(self) -> int:
        self.prune()
        return len(self._timestamps)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def time_until_reset(self) -> float:
        """Seconds until the oldest timestamp leaves the window (0 if empty)."""
        self.prune()
        if not self._timestamps:
            return 0.0
        return max(0.0, self.window - (self._clock() - self._timestamps[0]))


@dataclass
class RequestStats:
    """Per-engine counters.

    Attributes:
        request_count: Execution attempts since the last reset, retries included.
        window: Sliding window of attempt timestamps used for rate limiting.
        pending_requests: In-flight request id -> start time.
        queue: Requests waiting to be executed.
        start_time: When the engine started, or 0 while stopped.
    """

    window: RateWindow
    queue: RequestQueue
    request_count: int = 0
    pending_requests: dict[str, float] = field(default_factory=dict)
    start_time: float = 0.0

    def record_attempt(self) -> None:
        self.request_count += 1
        self.window.record()

    def uptime(self, now: float) -> float:
        return now - self.start_time if self.start_time else 0.0
