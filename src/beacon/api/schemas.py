"""Pydantic schemas for API request/response models.

Response models never carry a webhook secret, except the two that exist
to hand one out: CreatedWebhookResponse and SecretRotationResponse.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from beacon.models import DeliveryAttempt, WebhookSubscription


class CreateWebhookRequest(BaseModel):
    """Request body for registering a webhook.

    Attributes:
        url: Endpoint receiving deliveries.
        events: Event types to subscribe to; unknown ones are dropped.
        description: Optional human-readable description.
    """

    model_config = ConfigDict(extra="forbid")

    url: str = Field(description="Endpoint receiving deliveries")
    events: list[str] = Field(description="Event types to subscribe to")
    description: str | None = Field(default=None, description="Up to 500 characters")


class UpdateWebhookRequest(BaseModel):
    """Request body for a partial webhook update. Only supplied fields change."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    events: list[str] | None = None
    description: str | None = None
    active: bool | None = None


class WebhookResponse(BaseModel):
    """A webhook as shown to its owner (no secret)."""

    model_config = ConfigDict(extra="forbid")

    id: str
    url: str
    events: list[str]
    description: str | None = None
    active: bool
    failure_count: int
    last_triggered_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, webhook: WebhookSubscription) -> WebhookResponse:
        return cls(
            id=webhook.id,
            url=webhook.url,
            events=list(webhook.events),
            description=webhook.description,
            active=webhook.active,
            failure_count=webhook.failure_count,
            last_triggered_at=webhook.last_triggered_at,
            created_at=webhook.created_at,
            updated_at=webhook.updated_at,
        )


class WebhookListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhooks: list[WebhookResponse]


class CreatedWebhookResponse(BaseModel):
    """Response for a newly registered webhook, including its secret."""

    model_config = ConfigDict(extra="forbid")

    webhook: WebhookResponse
    secret: str = Field(description="Signing secret. Shown only once.")
    message: str = "Save the secret - it won't be shown again"


class SecretRotationResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    secret: str
    message: str = "Secret regenerated. Update your webhook receiver."


class DeleteResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    deleted: bool
    webhook_id: str


class DeliveryResultResponse(BaseModel):
    """Outcome of the synchronous test delivery."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int
    error: str | None = None


class DeliveryLogEntry(BaseModel):
    """One recorded delivery attempt."""

    model_config = ConfigDict(extra="forbid")

    id: str
    event: str
    url: str
    status_code: int
    success: bool
    error: str | None = None
    attempt: int
    job_id: str | None = None
    created_at: datetime

    @classmethod
    def from_model(cls, attempt: DeliveryAttempt) -> DeliveryLogEntry:
        return cls(**attempt.model_dump(exclude={"webhook_id"}))


class DeliveryLogResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    logs: list[DeliveryLogEntry]


class EventCatalogResponse(BaseModel):
    """The closed event taxonomy, grouped by category."""

    model_config = ConfigDict(extra="forbid")

    events: list[str]
    categories: dict[str, list[str]]
    descriptions: dict[str, str]


class SignatureInfoResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    algorithm: str
    header: str
    timestamp_header: str
    event_header: str
    format: str
    signature_payload: str
    example: dict[str, Any]
    tips: list[str]


class HealthResponse(BaseModel):
    """Response model for health check.

    Attributes:
        status: Health status (healthy/unhealthy).
        version: API version.
        storage_connected: Whether the service and its store are ready.
        scheduler_running: Whether the background delivery loop is active.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool
    scheduler_running: bool = False
