"""Webhook dispatch pipeline for Beacon.

Signed delivery with a fixed backoff table and a failure-driven kill-switch.

Example:
    ```python
    from beacon.webhooks import DeliveryLog, DeliveryWorker, EventRouter, RetryScheduler

    worker = DeliveryWorker(DeliveryLog(store))
    scheduler = RetryScheduler(store, InMemoryJobQueue(), worker)
    router = EventRouter(store, scheduler)

    await router.trigger_event("mood.logged", "user_123", {"mood": 4})
    await scheduler.run_pending()
    ```
"""

from .delivery_log import DeliveryLog
from .events import EventTriggers
from .registry import UNSET, WebhookRegistry
from .router import EventRouter
from .scheduler import RetryScheduler
from .signature import (
    DEFAULT_USER_AGENT,
    DELIVERY_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    build_headers,
    compute_signature,
    generate_secret,
    verification_instructions,
    verify_signature,
)
from .worker import DeliveryWorker

__all__ = [
    "DEFAULT_USER_AGENT",
    "DELIVERY_HEADER",
    "EVENT_HEADER",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "UNSET",
    "DeliveryLog",
    "DeliveryWorker",
    "EventRouter",
    "EventTriggers",
    "RetryScheduler",
    "WebhookRegistry",
    "build_headers",
    "compute_signature",
    "generate_secret",
    "verification_instructions",
    "verify_signature",
]
