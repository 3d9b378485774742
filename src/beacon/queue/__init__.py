"""Job queues for delayed delivery jobs.

Example:
    ```python
    from beacon.queue import create_queue

    queue = create_queue(settings)
    await queue.enqueue(job, not_before=utc_now())
    job = await queue.dequeue_ready(utc_now())
    ```
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .base import JobQueue
from .memory import InMemoryJobQueue
from .redis import REDIS_AVAILABLE, RedisJobQueue

if TYPE_CHECKING:
    from beacon.config import Settings

logger = logging.getLogger(__name__)


def create_queue(settings: Settings) -> JobQueue:
    """Use Redis when a URL is configured, otherwise the in-process heap."""
    if settings.redis_url:
        logger.info("Using Redis job queue")
        return RedisJobQueue(
            settings.redis_url,
            visibility_timeout=settings.queue_visibility_timeout_seconds,
        )
    logger.info("Using in-memory job queue (not shared across processes)")
    return InMemoryJobQueue()


__all__ = [
    "InMemoryJobQueue",
    "JobQueue",
    "REDIS_AVAILABLE",
    "RedisJobQueue",
    "create_queue",
]
