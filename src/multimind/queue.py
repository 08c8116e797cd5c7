"""
multimind: Bounded priority queue for pending engine requests.

Requests are ordered by priority (HIGH first) with FIFO ordering within the
same priority level. The queue never holds more than ``max_size`` entries.
"""

from __future__ import annotations

import heapq
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from multimind.models import QueuedRequest

logger = logging.getLogger(__name__)


class RequestQueue:
    """Priority queue with a hard size limit and removal by request id.

    Only touched from the event loop, so no locking.

    Example::

        q = RequestQueue(max_size=100)
        if not q.submit(request):
            # Queue full, caller must be told to back off
            ...
        next_request = q.pop()
    """

    def __init__(self, max_size: int = 100) -> None:
        self._heap: list[QueuedRequest] = []
        self._max_size = max_size
        self._total_submitted = 0
        self._total_rejected = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    def submit(self, request: QueuedRequest) -> bool:
        """Add a request.

        Returns True if accepted, False if the queue is already full.
        """
        if len(self._heap) >= self._max_size:
            self._total_rejected += 1
            logger.debug(
                f"Queue at hard limit ({len(self._heap)}/{self._max_size}), "
                f"rejected request {request.id}"
            )
            return False

        heapq.heappush(self._heap, request)
        self._total_submitted += 1
        return True

    def pop(self) -> QueuedRequest | None:
        """Remove and return the highest-priority request, or None if empty."""
        if not self._heap:
            return None
        return heapq.heappop(self._heap)

    def remove(self, request_id: str) -> QueuedRequest | None:
        """Take a specific request out of the queue, e.g. when it times out."""
        for index, request in enumerate(self._heap):
            if request.id == request_id:
                self._heap.pop(index)
                heapq.heapify(self._heap)
                return request
        return None

    def drain(self) -> list[QueuedRequest]:
        """Remove and return everything, in priority order."""
        items = sorted(self._heap)
        self._heap.clear()
        return items

    def __contains__(self, request_id: object) -> bool:
        return any(r.id == request_id for r in self._heap)

    def __len__(self) -> int:
        return len(self._heap)

    @property
    def depth(self) -> int:
        """Current number of pending requests."""
        return len(self._heap)

    @property
    def is_empty(self) -> bool:
        return not self._heap

    @property
    def is_full(self) -> bool:
        return len(self._heap) >= self._max_size

    def get_stats(self) -> dict[str, int]:
        """Queue statistics."""
        return {
            "depth": self.depth,
            "max_size": self._max_size,
            "total_submitted": self._total_submitted,
            "total_rejected": self._total_rejected,
        }
