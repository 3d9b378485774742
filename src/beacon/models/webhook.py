"""Webhook subscription models.

A subscription maps a target URL and a set of event types to signed HTTP
callbacks for one owner. The shared secret lives on the model so workers
can sign with it, but it is excluded from serialization and repr: it is
only handed out through CreatedWebhook and SecretRotation.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now


class WebhookSubscription(BaseModel):
    """A registered webhook endpoint.

    Attributes:
        id: Unique identifier for this webhook.
        user_id: User who owns this webhook.
        url: Endpoint receiving deliveries (HTTPS in production).
        events: Subscribed event types, non-empty, drawn from the taxonomy.
        description: Optional human-readable description.
        secret: Shared secret for HMAC-SHA256 signatures (never serialized).
        active: Whether deliveries are sent.
        failure_count: Terminally failed jobs since the last success.
        last_triggered_at: When an event last matched this webhook.
        created_at: When the webhook was registered.
        updated_at: When the webhook was last modified.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("whk"))
    user_id: str = Field(description="User who owns this webhook")
    url: str = Field(description="Endpoint receiving deliveries")
    events: list[str] = Field(min_length=1, description="Subscribed event types")
    description: str | None = Field(default=None, max_length=500)
    secret: str = Field(exclude=True, repr=False, description="Shared signing secret")
    active: bool = Field(default=True, description="Whether deliveries are sent")
    failure_count: int = Field(default=0, ge=0, description="Terminal failures since last success")
    last_triggered_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this webhook is active and subscribed to the event type."""
        return self.active and event_type in self.events


class CreatedWebhook(BaseModel):
    """Result of creating a webhook: the only time its secret is returned on creation."""

    model_config = ConfigDict(extra="forbid")

    webhook: WebhookSubscription
    secret: str


class SecretRotation(BaseModel):
    """Result of regenerating a webhook secret."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    secret: str


class FailureBookkeeping(BaseModel):
    """State of a subscription right after a terminal failure was recorded."""

    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    failure_count: int = Field(ge=0)
    active: bool
    deactivated: bool = Field(
        default=False, description="True if this failure tripped the kill-switch"
    )


__all__ = [
    "CreatedWebhook",
    "FailureBookkeeping",
    "SecretRotation",
    "WebhookSubscription",
]
