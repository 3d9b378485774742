"""Fan-out of triggered domain events to matching subscriptions."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from beacon.exceptions import ValidationError
from beacon.models import DeliveryJob, DomainEvent, TriggerResult, is_known_event, utc_now
from beacon.policies import log_and_continue

if TYPE_CHECKING:
    from beacon.storage import WebhookStore

    from .scheduler import RetryScheduler

logger = logging.getLogger(__name__)


class EventRouter:
    """Turns one domain event into one delivery job per matching webhook.

    Triggering never performs network I/O and never reports delivery
    outcomes: it reads matching subscriptions, enqueues jobs and returns.
    """

    def __init__(
        self,
        store: WebhookStore,
        scheduler: RetryScheduler,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._scheduler = scheduler
        self._clock = clock

    async def trigger_event(
        self,
        event_type: str,
        user_id: str,
        payload: dict[str, Any] | None = None,
    ) -> TriggerResult:
        """Enqueue deliveries of an event to the owner's subscribed webhooks.

        Args:
            event_type: Event type from the taxonomy.
            user_id: Owner whose webhooks receive the event.
            payload: JSON-serializable event data.

        Returns:
            How many jobs were created and their IDs.

        Raises:
            ValidationError: If event_type is not part of the taxonomy.
        """
        if not is_known_event(event_type):
            raise ValidationError("event", f"Unknown event type: {event_type!r}")

        subscriptions = await self._store.find_subscriptions_for_event(event_type, user_id)
        if not subscriptions:
            logger.debug("No webhooks for %s (user %s)", event_type, user_id)
            return TriggerResult(triggered=0)

        now = self._clock()
        event = DomainEvent(event=event_type, user_id=user_id, occurred_at=now, data=payload or {})
        body = event.to_body()

        job_ids: list[str] = []
        for subscription in subscriptions:
            job = DeliveryJob(
                webhook_id=subscription.id,
                user_id=user_id,
                url=subscription.url,
                event=event_type,
                body=body,
                created_at=now,
            )
            await self._scheduler.submit(job)
            job_ids.append(job.id)

        async with log_and_continue("webhook.touch_last_triggered", event=event_type):
            await self._store.touch_last_triggered([s.id for s in subscriptions], now)

        logger.info("Event %s triggered %d webhook(s) for user %s", event_type, len(job_ids), user_id)
        return TriggerResult(triggered=len(job_ids), job_ids=job_ids)
