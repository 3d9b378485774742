"""Tests for the WebhookService facade."""

from __future__ import annotations

import pytest
import pytest_asyncio

from beacon.config import Settings
from beacon.exceptions import NotFoundError, ValidationError
from beacon.queue import InMemoryJobQueue
from beacon.service import WebhookService
from beacon.storage import InMemoryWebhookStore

from conftest import ScriptedEndpoint

URL = "https://example.com/hooks"


@pytest.fixture
def endpoint() -> ScriptedEndpoint:
    return ScriptedEndpoint(200)


@pytest_asyncio.fixture
async def service(endpoint, clock):
    """A service on in-memory backends and a scripted endpoint."""
    settings = Settings(_env_file=None, env="test", storage_backend="memory")
    beacon = WebhookService.create(
        settings,
        store=InMemoryWebhookStore(),
        queue=InMemoryJobQueue(),
        http_client=endpoint.client(),
        clock=clock,
    )
    async with beacon:
        yield beacon


class TestCreate:
    """Tests for wiring."""

    def test_overrides_are_used(self):
        """Injected components replace the defaults."""
        store = InMemoryWebhookStore()
        queue = InMemoryJobQueue()
        beacon = WebhookService.create(
            Settings(_env_file=None, env="test"), store=store, queue=queue
        )
        assert beacon.store is store
        assert beacon.queue is queue
        assert beacon.scheduler.max_attempts == 5
        assert beacon.registry.max_per_user == 10

    def test_settings_flow_into_components(self):
        """Retry and limit settings reach the scheduler and registry."""
        settings = Settings(
            _env_file=None,
            env="test",
            max_attempts=3,
            retry_delays=[1, 2],
            failure_threshold=2,
            max_webhooks_per_user=4,
        )
        beacon = WebhookService.create(settings, store=InMemoryWebhookStore())
        assert beacon.scheduler.max_attempts == 3
        assert beacon.scheduler.failure_threshold == 2
        assert beacon.scheduler.retry_delay(2) == 2
        assert beacon.registry.max_per_user == 4


class TestEndToEnd:
    """Tests for full flows through the facade."""

    @pytest.mark.asyncio
    async def test_trigger_and_deliver(self, service, endpoint, clock):
        """A created webhook receives its test event and then triggered events."""
        created = await service.create_webhook("user_1", URL, ["mood.logged"])
        assert [r.headers["x-beacon-event"] for r in endpoint.requests] == ["webhook.test"]
        clock.advance(1)

        result = await service.events.mood_logged("user_1", {"mood": 4})
        assert result.triggered == 1
        await service.scheduler.run_pending()

        assert endpoint.requests[-1].headers["x-beacon-event"] == "mood.logged"
        logs = await service.get_delivery_logs(created.webhook.id, "user_1")
        assert [log.event for log in logs] == ["mood.logged", "webhook.test"]

    @pytest.mark.asyncio
    async def test_trigger_unknown_event(self, service):
        """Unknown event types are rejected at the facade."""
        with pytest.raises(ValidationError):
            await service.trigger_event("mood.unknown", "user_1")

    @pytest.mark.asyncio
    async def test_trigger_after_toggle_off(self, service):
        """Disabled webhooks receive nothing."""
        created = await service.create_webhook("user_1", URL, ["mood.logged"])
        await service.toggle_webhook(created.webhook.id, "user_1")

        result = await service.trigger_event("mood.logged", "user_1")
        assert result.triggered == 0

    @pytest.mark.asyncio
    async def test_send_test_event_ownership(self, service):
        """Test sends are owner-scoped."""
        created = await service.create_webhook("user_1", URL, ["mood.logged"])

        result = await service.send_test_event(created.webhook.id, "user_1")
        assert result.success is True
        with pytest.raises(NotFoundError):
            await service.send_test_event(created.webhook.id, "user_2")

    @pytest.mark.asyncio
    async def test_update_and_delete(self, service):
        """Update changes only the given fields; delete removes the webhook."""
        created = await service.create_webhook("user_1", URL, ["mood.logged"])
        webhook_id = created.webhook.id

        updated = await service.update_webhook(webhook_id, "user_1", description="hi")
        assert updated.description == "hi"
        assert updated.events == ["mood.logged"]

        await service.delete_webhook(webhook_id, "user_1")
        assert await service.list_webhooks("user_1") == []


class TestDeliveryLogs:
    """Tests for delivery log retrieval."""

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self, service):
        """Limits below 1 and above the maximum are clamped."""
        created = await service.create_webhook("user_1", URL, ["mood.logged"])
        webhook_id = created.webhook.id
        for _ in range(4):
            await service.send_test_event(webhook_id, "user_1")

        assert len(await service.get_delivery_logs(webhook_id, "user_1", limit=0)) == 1
        assert len(await service.get_delivery_logs(webhook_id, "user_1", limit=3)) == 3
        assert len(await service.get_delivery_logs(webhook_id, "user_1", limit=1000)) == 5
        assert len(await service.get_delivery_logs(webhook_id, "user_1")) == 5

    @pytest.mark.asyncio
    async def test_foreign_logs_not_found(self, service):
        """Another owner's logs are not visible."""
        created = await service.create_webhook("user_1", URL, ["mood.logged"])
        with pytest.raises(NotFoundError):
            await service.get_delivery_logs(created.webhook.id, "user_2")


class TestLifecycle:
    """Tests for start and close."""

    @pytest.mark.asyncio
    async def test_start_and_close(self, endpoint):
        """The background loop runs between start and close."""
        beacon = WebhookService.create(
            Settings(_env_file=None, env="test", scheduler_poll_interval=0.01),
            store=InMemoryWebhookStore(),
            http_client=endpoint.client(),
        )
        await beacon.initialize()
        beacon.start()
        assert beacon.scheduler.running

        await beacon.close()
        assert not beacon.scheduler.running

    def test_event_types(self):
        beacon = WebhookService.create(
            Settings(_env_file=None, env="test", storage_backend="memory")
        )
        assert "mood.logged" in beacon.event_types
        assert "webhook.test" not in beacon.event_types
