"""Tests for event fan-out and the named event triggers."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from beacon.exceptions import ValidationError
from beacon.models import ALL_EVENT_TYPES, JobState
from beacon.webhooks import EventRouter, EventTriggers

from conftest import ScriptedEndpoint, make_subscription


@pytest.fixture
def pipeline(store, queue, clock, build_pipeline):
    endpoint = ScriptedEndpoint(200)
    _, scheduler = build_pipeline(endpoint)
    router = EventRouter(store, scheduler, clock=clock)
    return endpoint, scheduler, router


class TestTriggerEvent:
    """Tests for EventRouter.trigger_event."""

    @pytest.mark.asyncio
    async def test_only_matching_active_owned(self, store, queue, clock, pipeline):
        """Jobs go to the owner's active webhooks subscribed to the event."""
        _, _, router = pipeline
        match = make_subscription(events=["mood.logged"])
        subs = [
            match,
            make_subscription(events=["task.completed"]),
            make_subscription(events=["mood.logged"], active=False),
            make_subscription(user_id="user_2", events=["mood.logged"]),
        ]
        for sub in subs:
            await store.insert_subscription(sub, max_per_user=10)

        result = await router.trigger_event("mood.logged", "user_1", {"mood": 4})

        assert result.triggered == 1
        assert len(result.job_ids) == 1
        job = await queue.dequeue_ready(clock.now)
        assert job.webhook_id == match.id
        assert job.state is JobState.PENDING

    @pytest.mark.asyncio
    async def test_no_match(self, store, queue, pipeline):
        """No matching webhook yields zero and enqueues nothing."""
        _, _, router = pipeline
        result = await router.trigger_event("mood.logged", "nobody")
        assert result.triggered == 0
        assert result.job_ids == []
        assert await queue.size() == 0

    @pytest.mark.asyncio
    async def test_unknown_event(self, pipeline):
        """Event types outside the taxonomy are rejected."""
        _, _, router = pipeline
        with pytest.raises(ValidationError) as exc_info:
            await router.trigger_event("mood.exploded", "user_1")
        assert exc_info.value.field == "event"

    @pytest.mark.asyncio
    async def test_same_body_for_every_webhook(self, store, pipeline, clock):
        """One envelope is serialized once and shared by all jobs."""
        endpoint, scheduler, router = pipeline
        for _ in range(3):
            await store.insert_subscription(make_subscription(), max_per_user=10)

        await router.trigger_event("task.completed", "user_1", {"task_id": "t1"})
        await scheduler.run_pending()

        bodies = {r.content for r in endpoint.requests}
        assert len(endpoint.requests) == 3
        assert len(bodies) == 1
        envelope = json.loads(bodies.pop())
        assert envelope["event"] == "task.completed"
        assert envelope["user_id"] == "user_1"
        assert envelope["data"] == {"task_id": "t1"}
        assert envelope["id"]
        assert envelope["occurred_at"]

    @pytest.mark.asyncio
    async def test_stamps_last_triggered(self, store, pipeline, clock):
        """Matched webhooks record when they were last triggered."""
        _, _, router = pipeline
        sub = make_subscription()
        await store.insert_subscription(sub, max_per_user=10)

        await router.trigger_event("mood.logged", "user_1")

        assert (await store.get_subscription(sub.id)).last_triggered_at == clock.now

    @pytest.mark.asyncio
    async def test_touch_failure_is_contained(self, store, queue, pipeline):
        """A failing last_triggered_at write does not fail the trigger."""
        _, _, router = pipeline
        await store.insert_subscription(make_subscription(), max_per_user=10)
        store.touch_last_triggered = AsyncMock(side_effect=RuntimeError("db down"))

        result = await router.trigger_event("mood.logged", "user_1")

        assert result.triggered == 1
        assert await queue.size() == 1


class TestEventTriggers:
    """Tests for the named trigger helpers."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,event_type",
        [
            ("user_created", "user.created"),
            ("subscription_cancelled", "subscription.cancelled"),
            ("mood_logged", "mood.logged"),
            ("streak_updated", "mood.streak_updated"),
            ("journal_entry_created", "journal.entry_created"),
            ("task_completed", "task.completed"),
            ("achievement_unlocked", "achievement.unlocked"),
            ("health_data_synced", "health.data_synced"),
        ],
    )
    async def test_named_trigger(self, method, event_type):
        """Each helper triggers its event type with the given data."""
        trigger = AsyncMock()
        triggers = EventTriggers(trigger)

        await getattr(triggers, method)("user_1", {"k": "v"})

        trigger.assert_awaited_once_with(event_type, "user_1", {"k": "v"})

    def test_one_helper_per_event(self):
        """Every non-test event type has a helper."""
        helpers = [
            name for name in dir(EventTriggers) if not name.startswith("_")
        ]
        assert len(helpers) == len(ALL_EVENT_TYPES)
