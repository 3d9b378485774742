"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import httpx
import pytest

from beacon.models import WebhookSubscription
from beacon.queue import InMemoryJobQueue
from beacon.storage import InMemoryWebhookStore
from beacon.webhooks import DeliveryLog, DeliveryWorker, RetryScheduler

# Add tests directory to path so helpers here can be imported by test modules
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

TEST_SECRET = "whsec_" + "ab" * 32


class FakeClock:
    """Manually advanced clock for deterministic scheduling tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class ScriptedEndpoint:
    """httpx.MockTransport handler answering with a scripted list of outcomes.

    Each entry is a status code or an exception instance to raise. The last
    entry repeats once the script is exhausted. Every request is recorded.
    """

    def __init__(self, *outcomes: int | Exception) -> None:
        self.outcomes = list(outcomes) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, json={"ok": 200 <= outcome < 300})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def make_subscription(**overrides: object) -> WebhookSubscription:
    """Build a subscription with sensible test defaults."""
    fields: dict[str, object] = {
        "user_id": "user_1",
        "url": "https://example.com/hooks",
        "events": ["mood.logged", "task.completed"],
        "secret": TEST_SECRET,
    }
    fields.update(overrides)
    return WebhookSubscription(**fields)  # type: ignore[arg-type]


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock starting at 2026-01-01 12:00 UTC."""
    return FakeClock()


@pytest.fixture
def store() -> InMemoryWebhookStore:
    """An empty in-memory webhook store."""
    return InMemoryWebhookStore()


@pytest.fixture
def queue() -> InMemoryJobQueue:
    """An empty in-memory job queue."""
    return InMemoryJobQueue()


@pytest.fixture
def build_pipeline(
    store: InMemoryWebhookStore, queue: InMemoryJobQueue, clock: FakeClock
) -> Callable[..., tuple[DeliveryWorker, RetryScheduler]]:
    """Factory wiring worker and scheduler around a scripted endpoint."""

    def _build(
        endpoint: ScriptedEndpoint, **scheduler_kwargs: object
    ) -> tuple[DeliveryWorker, RetryScheduler]:
        worker = DeliveryWorker(DeliveryLog(store), client=endpoint.client(), clock=clock)
        scheduler = RetryScheduler(store, queue, worker, clock=clock, **scheduler_kwargs)  # type: ignore[arg-type]
        return worker, scheduler

    return _build
