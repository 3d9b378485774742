"""Domain event taxonomy and the DomainEvent payload model.

The taxonomy is closed: subscriptions may only name the event types listed
here, and producers may only trigger them. Matching is exact string
membership, so there is no wildcard or prefix matching.
"""

from datetime import datetime
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now

EventType = Literal[
    # User events
    "user.created",
    "user.updated",
    "user.deleted",
    # Subscription events
    "subscription.started",
    "subscription.renewed",
    "subscription.cancelled",
    "subscription.expired",
    # Mood events
    "mood.logged",
    "mood.streak_updated",
    "mood.milestone",
    # Conversation events
    "conversation.started",
    "conversation.message",
    # Journal events
    "journal.entry_created",
    # Task events
    "task.created",
    "task.completed",
    # Buddy events
    "buddy.connected",
    "buddy.activity",
    # Achievement events
    "achievement.unlocked",
    # Health events
    "health.data_synced",
]

ALL_EVENT_TYPES: tuple[str, ...] = get_args(EventType)

# Single-shot event used by send_test_event; never subscribable
TEST_EVENT = "webhook.test"

EVENT_CATEGORIES: dict[str, list[str]] = {
    "user": ["user.created", "user.updated", "user.deleted"],
    "subscription": [
        "subscription.started",
        "subscription.renewed",
        "subscription.cancelled",
        "subscription.expired",
    ],
    "mood": ["mood.logged", "mood.streak_updated", "mood.milestone"],
    "conversation": ["conversation.started", "conversation.message"],
    "journal": ["journal.entry_created"],
    "task": ["task.created", "task.completed"],
    "buddy": ["buddy.connected", "buddy.activity"],
    "achievement": ["achievement.unlocked"],
    "health": ["health.data_synced"],
}

CATEGORY_DESCRIPTIONS: dict[str, str] = {
    "user.*": "Triggered when user account changes",
    "subscription.*": "Triggered on subscription lifecycle events",
    "mood.*": "Triggered when moods are logged or milestones reached",
    "conversation.*": "Triggered on chat activity",
    "journal.*": "Triggered when journal entries are created",
    "task.*": "Triggered when tasks are created or completed",
    "buddy.*": "Triggered on buddy activity",
    "achievement.*": "Triggered when achievements are unlocked",
    "health.*": "Triggered when health data is synced",
}


def is_known_event(event_type: object) -> bool:
    """Check whether a value names an event in the closed taxonomy."""
    return isinstance(event_type, str) and event_type in ALL_EVENT_TYPES


def filter_known_events(events: list[str]) -> list[str]:
    """Keep only taxonomy members, preserving order and dropping duplicates."""
    seen: set[str] = set()
    known: list[str] = []
    for event in events:
        if is_known_event(event) and event not in seen:
            seen.add(event)
            known.append(event)
    return known


class DomainEvent(BaseModel):
    """An occurrence in the host application that may fan out to webhooks.

    Ephemeral: built by EventRouter when a producer triggers an event and
    serialized once into the body every matching delivery job carries.

    Attributes:
        id: Unique identifier for this occurrence.
        event: Event type from the taxonomy (or ``webhook.test``).
        user_id: User who owns the event.
        occurred_at: When the event occurred.
        data: Opaque, JSON-serializable payload.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("evt"))
    event: str = Field(description="Dot-namespaced event type")
    user_id: str = Field(description="User who owns the event")
    occurred_at: datetime = Field(default_factory=utc_now, description="When it occurred")
    data: dict[str, Any] = Field(default_factory=dict, description="Event payload")

    def to_body(self) -> str:
        """Serialize to the raw JSON body that is signed and sent."""
        return self.model_dump_json()

    @classmethod
    def for_test(cls, webhook_id: str, user_id: str) -> "DomainEvent":
        """Create the single-shot test event for a webhook."""
        now = utc_now()
        return cls(
            event=TEST_EVENT,
            user_id=user_id,
            occurred_at=now,
            data={
                "message": "This is a test event from Beacon",
                "webhook_id": webhook_id,
                "timestamp": now.isoformat(),
            },
        )


__all__ = [
    "ALL_EVENT_TYPES",
    "CATEGORY_DESCRIPTIONS",
    "DomainEvent",
    "EVENT_CATEGORIES",
    "EventType",
    "TEST_EVENT",
    "filter_known_events",
    "is_known_event",
]
