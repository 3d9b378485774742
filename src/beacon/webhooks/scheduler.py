"""Retry state machine and backoff for delivery jobs.

Each job moves PENDING -> IN_FLIGHT -> SUCCEEDED, or through
RETRY_SCHEDULED back to IN_FLIGHT until ``max_attempts`` attempts have
failed and it lands in FAILED_TERMINAL. The wait after failed attempt N
is ``retry_delays[N - 1]`` seconds.

Kill-switch bookkeeping happens once per job, not once per attempt: a
successful attempt resets the subscription's failure_count to 0, and a
terminally failed job increments it by exactly 1 through the store's
atomic ``record_failure``.

Before every send the subscription is reloaded. If it was deactivated or
deleted while the job waited, the job is cancelled without a log row and
without consuming an attempt. Reloading also means a regenerated secret
takes effect for the very next signature.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from beacon.config import DEFAULT_RETRY_DELAYS
from beacon.models import DeliveryJob, DomainEvent, JobState, TEST_EVENT, utc_now
from beacon.policies import log_and_continue

if TYPE_CHECKING:
    from beacon.models import DeliveryResult, WebhookSubscription
    from beacon.queue import JobQueue
    from beacon.storage import WebhookStore

    from .worker import DeliveryWorker

logger = logging.getLogger(__name__)


class RetryScheduler:
    """Drives delivery jobs through their attempts.

    Example:
        ```python
        scheduler = RetryScheduler(store, InMemoryJobQueue(), worker)
        await scheduler.submit(job)

        # Either drive it explicitly...
        await scheduler.run_pending()

        # ...or let the background loop poll the queue
        scheduler.start(poll_interval=1.0)
        ```
    """

    def __init__(
        self,
        store: WebhookStore,
        queue: JobQueue,
        worker: DeliveryWorker,
        *,
        max_attempts: int = 5,
        retry_delays: Sequence[int] = DEFAULT_RETRY_DELAYS,
        failure_threshold: int = 5,
        max_concurrent: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: Subscription store for reloads and failure bookkeeping.
            queue: Where waiting jobs are held.
            worker: Performs the individual attempts.
            max_attempts: Attempts per job before FAILED_TERMINAL.
            retry_delays: Seconds to wait after failed attempt N, at index N-1.
            failure_threshold: failure_count at which a subscription is deactivated.
            max_concurrent: Maximum attempts in flight at once.
            clock: Source of the current time.
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if len(retry_delays) < max_attempts - 1:
            raise ValueError(
                f"retry_delays needs at least {max_attempts - 1} entries for "
                f"max_attempts={max_attempts}, got {len(retry_delays)}"
            )
        self._store = store
        self._queue = queue
        self._worker = worker
        self._max_attempts = max_attempts
        self._retry_delays = list(retry_delays)
        self._failure_threshold = failure_threshold
        self._max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._in_flight: set[asyncio.Task[JobState | None]] = set()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @property
    def failure_threshold(self) -> int:
        return self._failure_threshold

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def retry_delay(self, attempts_made: int) -> int:
        """Seconds to wait before the next attempt after attempts_made failures."""
        return self._retry_delays[attempts_made - 1]

    async def submit(self, job: DeliveryJob) -> None:
        """Queue a new job for immediate delivery."""
        job.state = JobState.PENDING
        job.next_attempt_at = self._clock()
        await self._queue.enqueue(job, job.next_attempt_at)
        logger.debug("Job %s queued for webhook %s (%s)", job.id, job.webhook_id, job.event)

    async def process(self, job: DeliveryJob) -> JobState:
        """Run the next attempt of a job and advance its state.

        Returns:
            The state the job is left in.
        """
        subscription = await self._store.get_subscription(job.webhook_id)
        if subscription is None or not subscription.active:
            job.state = JobState.CANCELLED
            logger.info(
                "Job %s cancelled: webhook %s is %s",
                job.id,
                job.webhook_id,
                "deleted" if subscription is None else "inactive",
            )
            return job.state

        job.state = JobState.IN_FLIGHT
        result = await self._worker.attempt(
            subscription,
            job.event,
            job.body,
            job_id=job.id,
            attempt=job.attempts + 1,
        )
        job.attempts += 1

        if result.success:
            job.state = JobState.SUCCEEDED
            job.last_error = None
            await self._store.record_success(job.webhook_id)
            return job.state

        job.last_error = result.error
        if job.attempts < self._max_attempts:
            delay = self.retry_delay(job.attempts)
            job.next_attempt_at = self._clock() + timedelta(seconds=delay)
            job.state = JobState.RETRY_SCHEDULED
            await self._queue.enqueue(job, job.next_attempt_at)
            logger.info(
                "Webhook scheduled for retry: %s to %s (attempt %d at %s)",
                job.event,
                subscription.url,
                job.attempts + 1,
                job.next_attempt_at.isoformat(),
            )
            return job.state

        job.state = JobState.FAILED_TERMINAL
        bookkeeping = await self._store.record_failure(job.webhook_id, self._failure_threshold)
        logger.warning(
            "Webhook max attempts exceeded: %s to %s after %d attempts",
            job.event,
            subscription.url,
            job.attempts,
        )
        if bookkeeping is not None and bookkeeping.deactivated:
            logger.warning(
                "Webhook %s deactivated after %d terminal failures",
                job.webhook_id,
                bookkeeping.failure_count,
            )
        return job.state

    async def _process_safely(self, job: DeliveryJob) -> JobState | None:
        """Process a job and ack it, putting it back if the store failed before any send."""
        state: JobState | None = None
        try:
            state = await self.process(job)
        except Exception as e:
            logger.exception("Error processing job %s: %s", job.id, e)
            if job.state in (JobState.PENDING, JobState.RETRY_SCHEDULED):
                retry_at = self._clock() + timedelta(seconds=self._retry_delays[0])
                try:
                    await self._queue.enqueue(job, retry_at)
                except Exception as requeue_error:
                    # Left unacked so a leasing queue hands the job out again
                    logger.error("Job %s not requeued: %s", job.id, requeue_error)
                    return None
            elif job.state in (JobState.SUCCEEDED, JobState.FAILED_TERMINAL):
                logger.error(
                    "Failure bookkeeping lost for webhook %s (job %s ended %s): %s",
                    job.webhook_id,
                    job.id,
                    job.state.value,
                    e,
                )
        async with log_and_continue("queue.ack", job_id=job.id):
            await self._queue.ack(job)
        return state

    async def _process_bounded(self, job: DeliveryJob) -> JobState | None:
        async with self._semaphore:
            return await self._process_safely(job)

    async def _drain(self, now: datetime, limit: int | None = None) -> list[DeliveryJob]:
        jobs: list[DeliveryJob] = []
        while limit is None or len(jobs) < limit:
            job = await self._queue.dequeue_ready(now)
            if job is None:
                break
            jobs.append(job)
        return jobs

    async def run_pending(self) -> int:
        """Process every job eligible now and wait for them to finish.

        Returns:
            Number of jobs processed.
        """
        jobs = await self._drain(self._clock())
        if jobs:
            await asyncio.gather(*(self._process_bounded(job) for job in jobs))
        return len(jobs)

    async def run(self, poll_interval: float = 1.0) -> None:
        """Poll the queue and start eligible jobs until cancelled."""
        logger.info("Retry scheduler started (poll_interval=%.2fs)", poll_interval)
        try:
            while True:
                try:
                    capacity = self._max_concurrent - len(self._in_flight)
                    if capacity > 0:
                        for job in await self._drain(self._clock(), limit=capacity):
                            task = asyncio.create_task(self._process_bounded(job))
                            self._in_flight.add(task)
                            task.add_done_callback(self._in_flight.discard)
                except Exception as e:
                    logger.exception("Scheduler error: %s", e)
                await asyncio.sleep(poll_interval)
        except asyncio.CancelledError:
            logger.info("Retry scheduler stopped")
            raise

    def start(self, poll_interval: float = 1.0) -> None:
        """Launch the polling loop as a background task."""
        if self.running:
            return
        self._task = asyncio.create_task(self.run(poll_interval))

    async def stop(self) -> None:
        """Stop polling and wait for in-flight attempts (each is time-bounded)."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def send_test(self, subscription: WebhookSubscription) -> DeliveryResult:
        """Send the single-shot test event: one attempt, one log row, no retry.

        The test send neither checks ``active`` nor touches failure_count.
        """
        event = DomainEvent.for_test(subscription.id, subscription.user_id)
        return await self._worker.attempt(subscription, TEST_EVENT, event.to_body())
