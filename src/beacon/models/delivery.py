"""Delivery models: attempts, jobs and their outcomes."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now


class JobState(str, Enum):
    """Lifecycle of a delivery job.

    PENDING -> IN_FLIGHT -> SUCCEEDED
                         -> RETRY_SCHEDULED -> IN_FLIGHT (repeat)
                         -> FAILED_TERMINAL
    CANCELLED is reached when the subscription is inactive or gone at send time.
    """

    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    RETRY_SCHEDULED = "retry_scheduled"
    SUCCEEDED = "succeeded"
    FAILED_TERMINAL = "failed_terminal"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED_TERMINAL, JobState.CANCELLED)


class DeliveryAttempt(BaseModel):
    """Audit record of one HTTP delivery attempt.

    Attributes:
        id: Unique identifier for this attempt.
        webhook_id: Webhook the attempt was made for.
        job_id: Delivery job, or None for a test send.
        url: URL the request was sent to.
        event: Event type delivered.
        status_code: HTTP status, 0 for network errors and timeouts.
        success: Whether the endpoint answered 2xx.
        error: Error text when the attempt failed.
        attempt: 1-based attempt number within the job.
        created_at: When the attempt finished.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    webhook_id: str
    job_id: str | None = None
    url: str
    event: str
    status_code: int = Field(ge=0)
    success: bool
    error: str | None = None
    attempt: int = Field(default=1, ge=1)
    created_at: datetime = Field(default_factory=utc_now)


class DeliveryJob(BaseModel):
    """A pending delivery of one event to one webhook.

    Jobs round-trip through JSON so durable queues can hold them. The body
    is serialized once at trigger time, so every retry sends identical bytes.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("job"))
    webhook_id: str
    user_id: str
    url: str = Field(description="Webhook URL at trigger time")
    event: str
    body: str = Field(description="Raw JSON body")
    attempts: int = Field(default=0, ge=0, description="Attempts made so far")
    state: JobState = JobState.PENDING
    next_attempt_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)
    last_error: str | None = None


class DeliveryResult(BaseModel):
    """Outcome of a single delivery attempt."""

    model_config = ConfigDict(extra="forbid")

    success: bool
    status_code: int = Field(ge=0)
    error: str | None = None
    attempt_id: str | None = None


class TriggerResult(BaseModel):
    """What trigger_event hands back to producers: counts, never outcomes."""

    model_config = ConfigDict(extra="forbid")

    triggered: int = Field(ge=0)
    job_ids: list[str] = Field(default_factory=list)


__all__ = [
    "DeliveryAttempt",
    "DeliveryJob",
    "DeliveryResult",
    "JobState",
    "TriggerResult",
]
