"""Abstract webhook store.

The store is the only place subscription and delivery-log state lives.
``failure_count`` and ``active`` are shared by every job running against a
subscription, so implementations must perform ``record_failure`` and
``record_success`` as single atomic operations, never as a read followed
by a write.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from beacon.models import DeliveryAttempt, FailureBookkeeping, WebhookSubscription

# Fields an owner may change through update_subscription
MUTABLE_FIELDS = frozenset({"url", "events", "description", "active"})


class WebhookStore(ABC):
    """Persistence for webhook subscriptions and delivery attempts."""

    async def initialize(self) -> None:  # noqa: B027
        """Prepare the backing store (create tables, open connections)."""

    async def close(self) -> None:  # noqa: B027
        """Release resources held by the store."""

    async def __aenter__(self) -> WebhookStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Subscriptions

    @abstractmethod
    async def insert_subscription(
        self, subscription: WebhookSubscription, max_per_user: int
    ) -> WebhookSubscription:
        """Persist a new subscription unless the owner is at the limit.

        The count check and the insert happen in one atomic unit: concurrent
        inserts for the same owner are serialized.

        Raises:
            LimitExceededError: If the owner already holds max_per_user rows.
        """

    @abstractmethod
    async def get_subscription(
        self, webhook_id: str, user_id: str | None = None
    ) -> WebhookSubscription | None:
        """Get a subscription by ID, optionally scoped to an owner."""

    @abstractmethod
    async def list_subscriptions(self, user_id: str) -> list[WebhookSubscription]:
        """List an owner's subscriptions, newest first."""

    @abstractmethod
    async def count_subscriptions(self, user_id: str) -> int:
        """Count an owner's subscriptions."""

    @abstractmethod
    async def find_subscriptions_for_event(
        self, event_type: str, user_id: str
    ) -> list[WebhookSubscription]:
        """Active subscriptions of user_id whose event list contains event_type exactly."""

    @abstractmethod
    async def update_subscription(
        self, webhook_id: str, user_id: str, fields: dict[str, Any]
    ) -> WebhookSubscription | None:
        """Apply owner-supplied field changes; None if no owned row matched."""

    @abstractmethod
    async def delete_subscription(self, webhook_id: str, user_id: str) -> bool:
        """Hard-delete an owned subscription and its delivery log."""

    @abstractmethod
    async def set_secret(self, webhook_id: str, user_id: str, secret: str) -> bool:
        """Replace the signing secret in a single write."""

    @abstractmethod
    async def touch_last_triggered(self, webhook_ids: Sequence[str], at: datetime) -> None:
        """Stamp last_triggered_at on a batch of subscriptions."""

    @abstractmethod
    async def record_failure(self, webhook_id: str, threshold: int) -> FailureBookkeeping | None:
        """Atomically increment failure_count; deactivate when it reaches threshold.

        Returns:
            The resulting bookkeeping, or None if the subscription is gone.
        """

    @abstractmethod
    async def record_success(self, webhook_id: str) -> None:
        """Atomically reset failure_count to 0."""

    # Delivery log

    @abstractmethod
    async def append_delivery_attempt(self, attempt: DeliveryAttempt) -> str:
        """Append one delivery-attempt row. Rows are never updated."""

    @abstractmethod
    async def list_delivery_attempts(
        self, webhook_id: str, limit: int = 50
    ) -> list[DeliveryAttempt]:
        """Delivery attempts for a webhook, newest first."""


def check_mutable_fields(fields: dict[str, Any]) -> None:
    """Reject updates to fields owners may not change directly."""
    unknown = set(fields) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {sorted(unknown)}")
