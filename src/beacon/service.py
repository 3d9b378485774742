"""Core Beacon service layer.

This module provides WebhookService, the facade that wires the store,
job queue, delivery worker, retry scheduler, registry and event router
together. Producers call ``trigger_event``; the management surface calls
the CRUD, test-send and log operations.

Example:
    ```python
    from beacon.service import WebhookService

    async with WebhookService.create() as beacon:
        created = await beacon.create_webhook(
            user_id="user_123",
            url="https://example.com/hooks",
            events=["mood.logged"],
        )
        print(f"Signing secret: {created.secret}")

        beacon.start()  # background delivery loop
        await beacon.events.mood_logged("user_123", {"mood": 4})
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from beacon.config import Settings
from beacon.logging import get_logger
from beacon.models import (
    ALL_EVENT_TYPES,
    CreatedWebhook,
    DeliveryAttempt,
    DeliveryResult,
    SecretRotation,
    TriggerResult,
    WebhookSubscription,
)
from beacon.queue import JobQueue, create_queue
from beacon.storage import WebhookStore, create_store
from beacon.webhooks import (
    UNSET,
    DeliveryLog,
    DeliveryWorker,
    EventRouter,
    EventTriggers,
    RetryScheduler,
    WebhookRegistry,
)

logger = get_logger(__name__)


@dataclass
class WebhookService:
    """High-level Beacon service.

    Uses dependency injection for the store, queue and pipeline
    components, so tests can build it around in-memory backends and a
    mock HTTP transport.

    Attributes:
        store: Subscription and delivery-log store.
        queue: Holds pending and delayed delivery jobs.
        settings: Configuration settings.
        worker: Performs single signed attempts.
        scheduler: Drives jobs through retries.
        registry: Subscription CRUD and invariants.
        router: Fans triggered events out into jobs.
    """

    store: WebhookStore
    queue: JobQueue
    settings: Settings
    worker: DeliveryWorker
    scheduler: RetryScheduler
    registry: WebhookRegistry
    router: EventRouter
    delivery_log: DeliveryLog

    _events: EventTriggers | None = field(default=None, init=False, repr=False)

    @classmethod
    def create(cls, settings: Settings | None = None, **overrides: Any) -> WebhookService:
        """Create a WebhookService with default dependencies.

        Args:
            settings: Optional settings. Uses the environment if None.
            **overrides: Replace a default component: ``store``, ``queue``,
                ``http_client`` or ``clock``.

        Example:
            ```python
            settings = Settings(storage_backend="memory")
            async with WebhookService.create(settings) as beacon:
                ...
            ```
        """
        if settings is None:
            settings = Settings()

        store: WebhookStore = overrides.get("store") or create_store(settings)
        queue: JobQueue = overrides.get("queue") or create_queue(settings)
        clock_kwargs = {"clock": overrides["clock"]} if "clock" in overrides else {}

        delivery_log = DeliveryLog(store)
        worker = DeliveryWorker(
            delivery_log,
            timeout_seconds=settings.delivery_timeout_seconds,
            user_agent=settings.user_agent,
            client=overrides.get("http_client"),
            **clock_kwargs,
        )
        scheduler = RetryScheduler(
            store,
            queue,
            worker,
            max_attempts=settings.max_attempts,
            retry_delays=settings.retry_delays,
            failure_threshold=settings.failure_threshold,
            max_concurrent=settings.max_concurrent_deliveries,
            **clock_kwargs,
        )
        registry = WebhookRegistry(
            store,
            production=settings.is_production,
            max_per_user=settings.max_webhooks_per_user,
            test_sender=scheduler.send_test,
        )
        router = EventRouter(store, scheduler, **clock_kwargs)

        return cls(
            store=store,
            queue=queue,
            settings=settings,
            worker=worker,
            scheduler=scheduler,
            registry=registry,
            router=router,
            delivery_log=delivery_log,
        )

    async def initialize(self) -> None:
        """Initialize the service (database tables, connections)."""
        await self.store.initialize()
        logger.info(
            "Beacon initialized",
            storage=type(self.store).__name__,
            queue=type(self.queue).__name__,
        )

    def start(self) -> None:
        """Start the background delivery loop."""
        self.scheduler.start(self.settings.scheduler_poll_interval)

    async def close(self) -> None:
        """Stop delivering and release resources."""
        await self.scheduler.stop()
        await self.queue.close()
        await self.store.close()

    async def __aenter__(self) -> WebhookService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Producer entry point

    async def trigger_event(
        self,
        event_type: str,
        user_id: str,
        payload: dict[str, Any] | None = None,
    ) -> TriggerResult:
        """Enqueue deliveries of an event to the owner's matching webhooks.

        Returns as soon as jobs are enqueued; delivery outcomes are never
        reported back to the caller.

        Raises:
            ValidationError: If event_type is outside the taxonomy.
        """
        return await self.router.trigger_event(event_type, user_id, payload)

    @property
    def events(self) -> EventTriggers:
        """Named triggers, e.g. ``await service.events.task_completed(user_id, data)``."""
        if self._events is None:
            self._events = EventTriggers(self.trigger_event)
        return self._events

    @property
    def event_types(self) -> tuple[str, ...]:
        return ALL_EVENT_TYPES

    # Management

    async def create_webhook(
        self,
        user_id: str,
        url: str,
        events: list[str],
        description: str | None = None,
        secret: str | None = None,
    ) -> CreatedWebhook:
        """Register a webhook; the returned secret is shown only this once."""
        return await self.registry.create(user_id, url, events, description, secret)

    async def list_webhooks(self, user_id: str) -> list[WebhookSubscription]:
        return await self.registry.list(user_id)

    async def get_webhook(self, webhook_id: str, user_id: str) -> WebhookSubscription:
        return await self.registry.get(webhook_id, user_id)

    async def update_webhook(
        self,
        webhook_id: str,
        user_id: str,
        *,
        url: str = UNSET,
        events: list[str] = UNSET,
        description: str | None = UNSET,
        active: bool = UNSET,
    ) -> WebhookSubscription:
        """Change the supplied fields of an owned webhook."""
        return await self.registry.update(
            webhook_id,
            user_id,
            url=url,
            events=events,
            description=description,
            active=active,
        )

    async def delete_webhook(self, webhook_id: str, user_id: str) -> None:
        await self.registry.delete(webhook_id, user_id)

    async def regenerate_secret(self, webhook_id: str, user_id: str) -> SecretRotation:
        return await self.registry.regenerate_secret(webhook_id, user_id)

    async def toggle_webhook(self, webhook_id: str, user_id: str) -> WebhookSubscription:
        return await self.registry.toggle(webhook_id, user_id)

    async def send_test_event(self, webhook_id: str, user_id: str) -> DeliveryResult:
        """Send one ``webhook.test`` delivery and wait for its outcome.

        Raises:
            NotFoundError: If no webhook with this ID belongs to user_id.
        """
        subscription = await self.registry.get(webhook_id, user_id)
        result = await self.scheduler.send_test(subscription)
        logger.info(
            "Test event sent",
            webhook_id=webhook_id,
            success=result.success,
            status_code=result.status_code,
        )
        return result

    async def get_delivery_logs(
        self,
        webhook_id: str,
        user_id: str,
        limit: int | None = None,
    ) -> list[DeliveryAttempt]:
        """Recent delivery attempts of an owned webhook, newest first.

        The limit is clamped to 1..delivery_log_max_limit.

        Raises:
            NotFoundError: If no webhook with this ID belongs to user_id.
        """
        await self.registry.get(webhook_id, user_id)
        if limit is None:
            limit = self.settings.delivery_log_default_limit
        limit = max(1, min(limit, self.settings.delivery_log_max_limit))
        return await self.delivery_log.recent(webhook_id, limit=limit)


__all__ = ["WebhookService"]
