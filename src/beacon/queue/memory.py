"""In-process job queue: a min-heap keyed by eligibility time."""

from __future__ import annotations

import asyncio
import heapq
import itertools
from datetime import datetime

from beacon.models import DeliveryJob

from .base import JobQueue


class InMemoryJobQueue(JobQueue):
    """Timer heap for single-process deployments.

    Jobs with equal eligibility times come out in enqueue order. Pending
    jobs are lost when the process exits.
    """

    def __init__(self) -> None:
        self._heap: list[tuple[datetime, int, DeliveryJob]] = []
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def enqueue(self, job: DeliveryJob, not_before: datetime) -> None:
        async with self._lock:
            heapq.heappush(self._heap, (not_before, next(self._sequence), job))

    async def dequeue_ready(self, now: datetime) -> DeliveryJob | None:
        async with self._lock:
            if not self._heap or self._heap[0][0] > now:
                return None
            return heapq.heappop(self._heap)[2]

    async def size(self) -> int:
        async with self._lock:
            return len(self._heap)

    async def next_eligible_at(self) -> datetime | None:
        """Eligibility time of the earliest waiting job."""
        async with self._lock:
            return self._heap[0][0] if self._heap else None
