"""Data models for Beacon.

Subscriptions:
    - WebhookSubscription: owner-scoped URL + event set + signing secret
    - CreatedWebhook / SecretRotation: the only carriers of a plaintext secret
    - FailureBookkeeping: kill-switch state after a terminal failure

Events:
    - DomainEvent: an occurrence produced by the host application
    - EventType / ALL_EVENT_TYPES / EVENT_CATEGORIES: the closed taxonomy

Delivery:
    - DeliveryJob / JobState: transient per-delivery state machine
    - DeliveryAttempt: append-only audit row
    - DeliveryResult / TriggerResult: operation outcomes
"""

from .base import generate_id, utc_now
from .delivery import DeliveryAttempt, DeliveryJob, DeliveryResult, JobState, TriggerResult
from .events import (
    ALL_EVENT_TYPES,
    CATEGORY_DESCRIPTIONS,
    EVENT_CATEGORIES,
    TEST_EVENT,
    DomainEvent,
    EventType,
    filter_known_events,
    is_known_event,
)
from .webhook import CreatedWebhook, FailureBookkeeping, SecretRotation, WebhookSubscription

__all__ = [
    # Helpers
    "generate_id",
    "utc_now",
    # Events
    "ALL_EVENT_TYPES",
    "CATEGORY_DESCRIPTIONS",
    "DomainEvent",
    "EVENT_CATEGORIES",
    "EventType",
    "TEST_EVENT",
    "filter_known_events",
    "is_known_event",
    # Subscriptions
    "CreatedWebhook",
    "FailureBookkeeping",
    "SecretRotation",
    "WebhookSubscription",
    # Delivery
    "DeliveryAttempt",
    "DeliveryJob",
    "DeliveryResult",
    "JobState",
    "TriggerResult",
]
