"""Tests for the retry state machine and kill switch."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from beacon.models import DeliveryJob, JobState
from beacon.webhooks import RetryScheduler, verify_signature

from conftest import ScriptedEndpoint, make_subscription


def _job_for(sub, body: str = '{"event":"mood.logged"}') -> DeliveryJob:
    return DeliveryJob(
        webhook_id=sub.id,
        user_id=sub.user_id,
        url=sub.url,
        event="mood.logged",
        body=body,
    )


async def _drive(scheduler, clock, delays):
    """Run the first attempt, then each retry after advancing the clock."""
    assert await scheduler.run_pending() == 1
    for delay in delays:
        clock.advance(delay - 1)
        assert await scheduler.run_pending() == 0
        clock.advance(1)
        assert await scheduler.run_pending() == 1


class TestConstruction:
    """Tests for scheduler configuration checks."""

    def test_rejects_zero_attempts(self, store, queue):
        """At least one attempt is required."""
        with pytest.raises(ValueError):
            RetryScheduler(store, queue, AsyncMock(), max_attempts=0)

    def test_rejects_short_delay_list(self, store, queue):
        """Every retry needs a delay."""
        with pytest.raises(ValueError):
            RetryScheduler(store, queue, AsyncMock(), max_attempts=4, retry_delays=[60, 300])

    def test_delay_indexing(self, store, queue):
        """The wait after failed attempt N is delays[N-1]."""
        scheduler = RetryScheduler(store, queue, AsyncMock())
        assert [scheduler.retry_delay(n) for n in range(1, 5)] == [60, 300, 1800, 7200]


class TestRetries:
    """Tests for the job lifecycle."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, store, queue, clock, build_pipeline):
        """A 2xx on the first attempt finishes the job with one log row."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(200)
        _, scheduler = build_pipeline(endpoint)
        job = _job_for(sub)

        await scheduler.submit(job)
        await scheduler.run_pending()

        assert job.state is JobState.SUCCEEDED
        assert job.attempts == 1
        assert await queue.size() == 0
        assert len(await store.list_delivery_attempts(sub.id)) == 1

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self, store, queue, clock, build_pipeline):
        """Three failures then a success log [F, F, F, T] and reset the count."""
        sub = make_subscription(failure_count=2)
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(500, 500, 500, 200)
        _, scheduler = build_pipeline(endpoint)
        job = _job_for(sub)
        start = clock.now

        await scheduler.submit(job)
        await _drive(scheduler, clock, [60, 300, 1800])

        assert job.state is JobState.SUCCEEDED
        assert job.attempts == 4
        rows = await store.list_delivery_attempts(sub.id)
        assert [r.success for r in reversed(rows)] == [False, False, False, True]
        assert [r.attempt for r in reversed(rows)] == [1, 2, 3, 4]
        assert clock.now - start == timedelta(seconds=60 + 300 + 1800)

        loaded = await store.get_subscription(sub.id)
        assert loaded.failure_count == 0
        assert loaded.active is True

    @pytest.mark.asyncio
    async def test_retry_waits_for_its_delay(self, store, queue, clock, build_pipeline):
        """A failed attempt is rescheduled exactly one delay later."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        _, scheduler = build_pipeline(ScriptedEndpoint(503))
        job = _job_for(sub)

        await scheduler.submit(job)
        await scheduler.run_pending()

        assert job.state is JobState.RETRY_SCHEDULED
        assert job.last_error == "HTTP 503"
        assert job.next_attempt_at == clock.now + timedelta(seconds=60)
        assert await queue.next_eligible_at() == job.next_attempt_at

    @pytest.mark.asyncio
    async def test_terminal_failure_counts_once(self, store, queue, clock, build_pipeline):
        """Five failed attempts give five rows and one failure_count increment."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(500)
        _, scheduler = build_pipeline(endpoint)
        job = _job_for(sub)

        await scheduler.submit(job)
        await _drive(scheduler, clock, [60, 300, 1800, 7200])

        assert job.state is JobState.FAILED_TERMINAL
        assert len(endpoint.requests) == 5
        assert len(await store.list_delivery_attempts(sub.id)) == 5
        assert await queue.size() == 0

        loaded = await store.get_subscription(sub.id)
        assert loaded.failure_count == 1
        assert loaded.active is True

    @pytest.mark.asyncio
    async def test_deactivates_at_threshold(self, store, queue, clock, build_pipeline):
        """The terminal failure reaching the threshold turns the webhook off."""
        sub = make_subscription(failure_count=4)
        await store.insert_subscription(sub, max_per_user=10)
        _, scheduler = build_pipeline(ScriptedEndpoint(500))
        job = _job_for(sub)

        await scheduler.submit(job)
        await _drive(scheduler, clock, [60, 300, 1800, 7200])

        loaded = await store.get_subscription(sub.id)
        assert loaded.failure_count == 5
        assert loaded.active is False

    @pytest.mark.asyncio
    async def test_identical_body_on_every_attempt(self, store, queue, clock, build_pipeline):
        """Retries resend the same bytes with a fresh timestamp."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(500, 200)
        _, scheduler = build_pipeline(endpoint)

        await scheduler.submit(_job_for(sub, body='{"n":1}'))
        await _drive(scheduler, clock, [60])

        first, second = endpoint.requests
        assert first.content == second.content == b'{"n":1}'
        assert int(second.headers["x-beacon-timestamp"]) - int(
            first.headers["x-beacon-timestamp"]
        ) == 60


class TestCancellation:
    """Tests for jobs whose subscription changed while waiting."""

    @pytest.mark.asyncio
    async def test_cancelled_when_deactivated(self, store, queue, clock, build_pipeline):
        """A webhook switched off before a retry cancels the job without a row."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(500)
        _, scheduler = build_pipeline(endpoint)
        job = _job_for(sub)

        await scheduler.submit(job)
        await scheduler.run_pending()
        await store.update_subscription(sub.id, sub.user_id, {"active": False})
        clock.advance(60)
        await scheduler.run_pending()

        assert job.state is JobState.CANCELLED
        assert job.attempts == 1
        assert len(endpoint.requests) == 1
        assert len(await store.list_delivery_attempts(sub.id)) == 1
        assert (await store.get_subscription(sub.id)).failure_count == 0

    @pytest.mark.asyncio
    async def test_cancelled_when_deleted(self, store, queue, clock, build_pipeline):
        """A deleted webhook cancels its queued job."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(200)
        _, scheduler = build_pipeline(endpoint)
        job = _job_for(sub)

        await scheduler.submit(job)
        await store.delete_subscription(sub.id, sub.user_id)
        await scheduler.run_pending()

        assert job.state is JobState.CANCELLED
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_retry_uses_regenerated_secret(self, store, queue, clock, build_pipeline):
        """A secret rotated between attempts signs the next attempt."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(500, 200)
        _, scheduler = build_pipeline(endpoint)
        new_secret = "whsec_" + "cd" * 32

        await scheduler.submit(_job_for(sub))
        await scheduler.run_pending()
        await store.set_secret(sub.id, sub.user_id, new_secret)
        clock.advance(60)
        await scheduler.run_pending()

        retry = endpoint.requests[1]
        ts = retry.headers["x-beacon-timestamp"]
        signature = retry.headers["x-beacon-signature"]
        assert verify_signature(retry.content, ts, signature, new_secret)
        assert not verify_signature(retry.content, ts, signature, sub.secret)

    @pytest.mark.asyncio
    async def test_store_error_requeues(self, store, queue, clock, build_pipeline):
        """A store failure before sending puts the job back."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(200)
        _, scheduler = build_pipeline(endpoint)
        original = store.get_subscription
        store.get_subscription = AsyncMock(side_effect=RuntimeError("db down"))

        await scheduler.submit(_job_for(sub))
        await scheduler.run_pending()
        assert await queue.size() == 1
        assert endpoint.requests == []

        store.get_subscription = original
        clock.advance(60)
        await scheduler.run_pending()
        assert len(endpoint.requests) == 1


class TestQueueHandoff:
    """Tests for acknowledging jobs and reporting lost bookkeeping."""

    @pytest.mark.asyncio
    async def test_acks_each_processed_job(self, store, queue, clock, build_pipeline):
        """Every processed attempt is acked, including one that schedules a retry."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(500, 200)
        _, scheduler = build_pipeline(endpoint)
        queue.ack = AsyncMock()
        job = _job_for(sub)

        await scheduler.submit(job)
        await scheduler.run_pending()
        queue.ack.assert_awaited_once_with(job)

        clock.advance(60)
        await scheduler.run_pending()
        assert queue.ack.await_count == 2
        assert job.state is JobState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_failed_requeue_leaves_job_unacked(self, store, queue, clock, build_pipeline):
        """A job that could not be put back stays leased for redelivery."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        _, scheduler = build_pipeline(ScriptedEndpoint(200))
        await scheduler.submit(_job_for(sub))

        store.get_subscription = AsyncMock(side_effect=RuntimeError("db down"))
        queue.enqueue = AsyncMock(side_effect=RuntimeError("queue down"))
        queue.ack = AsyncMock()
        await scheduler.run_pending()

        queue.enqueue.assert_awaited_once()
        queue.ack.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lost_terminal_failure_is_logged(
        self, store, queue, clock, build_pipeline, caplog
    ):
        """A failed increment after the last attempt is reported with the webhook id."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        _, scheduler = build_pipeline(ScriptedEndpoint(500), max_attempts=1, retry_delays=[])
        store.record_failure = AsyncMock(side_effect=RuntimeError("db down"))
        queue.ack = AsyncMock()
        job = _job_for(sub)

        await scheduler.submit(job)
        with caplog.at_level(logging.ERROR, logger="beacon.webhooks.scheduler"):
            await scheduler.run_pending()

        assert job.state is JobState.FAILED_TERMINAL
        lost = [
            r
            for r in caplog.records
            if r.levelno == logging.ERROR and "bookkeeping lost" in r.getMessage()
        ]
        assert len(lost) == 1
        assert sub.id in lost[0].getMessage()
        queue.ack.assert_awaited_once_with(job)


class TestTestSend:
    """Tests for the single-shot test delivery."""

    @pytest.mark.asyncio
    async def test_sends_while_inactive(self, store, queue, clock, build_pipeline):
        """Test sends ignore the active flag and never touch failure_count."""
        sub = make_subscription(active=False, failure_count=3)
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(500)
        _, scheduler = build_pipeline(endpoint)

        result = await scheduler.send_test(sub)

        assert result.success is False
        assert result.status_code == 500
        assert endpoint.requests[0].headers["x-beacon-event"] == "webhook.test"
        assert await queue.size() == 0
        [row] = await store.list_delivery_attempts(sub.id)
        assert row.event == "webhook.test"
        assert (await store.get_subscription(sub.id)).failure_count == 3


class TestBackgroundLoop:
    """Tests for start and stop."""

    @pytest.mark.asyncio
    async def test_loop_delivers_and_stops(self, store, queue, clock, build_pipeline):
        """The polling loop picks up submitted jobs and stops cleanly."""
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)
        endpoint = ScriptedEndpoint(200)
        _, scheduler = build_pipeline(endpoint)
        job = _job_for(sub)

        scheduler.start(poll_interval=0.01)
        assert scheduler.running
        await scheduler.submit(job)
        for _ in range(100):
            if job.state is JobState.SUCCEEDED:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert job.state is JobState.SUCCEEDED
        assert not scheduler.running
