"""SQLAlchemy tables for webhooks and delivery attempts."""

from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from beacon.models import DeliveryAttempt, WebhookSubscription


def _utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; every stored timestamp is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class WebhookRow(Base):
    __tablename__ = "webhooks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    events: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    secret: Mapped[str] = mapped_column(String(128), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_triggered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    @classmethod
    def from_model(cls, subscription: WebhookSubscription) -> "WebhookRow":
        return cls(
            id=subscription.id,
            user_id=subscription.user_id,
            url=subscription.url,
            events=list(subscription.events),
            description=subscription.description,
            secret=subscription.secret,
            active=subscription.active,
            failure_count=subscription.failure_count,
            last_triggered_at=subscription.last_triggered_at,
            created_at=subscription.created_at,
            updated_at=subscription.updated_at,
        )

    def to_model(self) -> WebhookSubscription:
        return WebhookSubscription(
            id=self.id,
            user_id=self.user_id,
            url=self.url,
            events=list(self.events),
            description=self.description,
            secret=self.secret,
            active=self.active,
            failure_count=self.failure_count,
            last_triggered_at=as_utc(self.last_triggered_at),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )


class DeliveryAttemptRow(Base):
    __tablename__ = "webhook_deliveries"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    webhook_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("webhooks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    event: Mapped[str] = mapped_column(String(64), nullable=False)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), index=True
    )

    @classmethod
    def from_model(cls, attempt: DeliveryAttempt) -> "DeliveryAttemptRow":
        return cls(**attempt.model_dump())

    def to_model(self) -> DeliveryAttempt:
        return DeliveryAttempt(
            id=self.id,
            webhook_id=self.webhook_id,
            job_id=self.job_id,
            url=self.url,
            event=self.event,
            status_code=self.status_code,
            success=self.success,
            error=self.error,
            attempt=self.attempt,
            created_at=as_utc(self.created_at),
        )
