"""Narrow job-queue interface consumed by the retry scheduler."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from beacon.models import DeliveryJob


class JobQueue(ABC):
    """Holds delivery jobs until they become eligible to run.

    A job enqueued with ``not_before`` is returned by ``dequeue_ready`` only
    once ``now >= not_before``. Each enqueued job is handed out once, and the
    consumer calls ``ack`` when it is done with it. Queues that survive a
    process crash may hand an unacknowledged job out again, so delivery is
    at least once.
    """

    @abstractmethod
    async def enqueue(self, job: DeliveryJob, not_before: datetime) -> None:
        """Store a job, eligible from not_before onward."""

    @abstractmethod
    async def dequeue_ready(self, now: datetime) -> DeliveryJob | None:
        """Remove and return the earliest eligible job, or None."""

    @abstractmethod
    async def size(self) -> int:
        """Number of jobs waiting, eligible or not."""

    async def ack(self, job: DeliveryJob) -> None:  # noqa: B027
        """Mark a dequeued job as finished with."""

    async def close(self) -> None:  # noqa: B027
        """Release resources held by the queue."""
