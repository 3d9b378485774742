"""In-process webhook store.

Suitable for tests, local development and single-process deployments.
Every mutation runs under one asyncio.Lock, which makes each store
operation atomic with respect to concurrently running delivery tasks.
Models are copied on the way in and out so callers never share state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from beacon.exceptions import LimitExceededError
from beacon.models import DeliveryAttempt, FailureBookkeeping, WebhookSubscription, utc_now

from .base import WebhookStore, check_mutable_fields


class InMemoryWebhookStore(WebhookStore):
    """Dictionary-backed store guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, WebhookSubscription] = {}
        self._attempts: list[DeliveryAttempt] = []
        self._lock = asyncio.Lock()

    @staticmethod
    def _copy(subscription: WebhookSubscription) -> WebhookSubscription:
        return subscription.model_copy(deep=True)

    def _owned(self, webhook_id: str, user_id: str | None) -> WebhookSubscription | None:
        subscription = self._subscriptions.get(webhook_id)
        if subscription is None:
            return None
        if user_id is not None and subscription.user_id != user_id:
            return None
        return subscription

    async def insert_subscription(
        self, subscription: WebhookSubscription, max_per_user: int
    ) -> WebhookSubscription:
        async with self._lock:
            owned = sum(1 for s in self._subscriptions.values() if s.user_id == subscription.user_id)
            if owned >= max_per_user:
                raise LimitExceededError(max_per_user)
            self._subscriptions[subscription.id] = self._copy(subscription)
            return self._copy(subscription)

    async def get_subscription(
        self, webhook_id: str, user_id: str | None = None
    ) -> WebhookSubscription | None:
        async with self._lock:
            subscription = self._owned(webhook_id, user_id)
            return self._copy(subscription) if subscription else None

    async def list_subscriptions(self, user_id: str) -> list[WebhookSubscription]:
        async with self._lock:
            owned = [self._copy(s) for s in self._subscriptions.values() if s.user_id == user_id]
        owned.sort(key=lambda s: s.created_at, reverse=True)
        return owned

    async def count_subscriptions(self, user_id: str) -> int:
        async with self._lock:
            return sum(1 for s in self._subscriptions.values() if s.user_id == user_id)

    async def find_subscriptions_for_event(
        self, event_type: str, user_id: str
    ) -> list[WebhookSubscription]:
        async with self._lock:
            return [
                self._copy(s)
                for s in self._subscriptions.values()
                if s.user_id == user_id and s.subscribes_to(event_type)
            ]

    async def update_subscription(
        self, webhook_id: str, user_id: str, fields: dict[str, Any]
    ) -> WebhookSubscription | None:
        check_mutable_fields(fields)
        async with self._lock:
            subscription = self._owned(webhook_id, user_id)
            if subscription is None:
                return None
            updated = subscription.model_copy(update={**fields, "updated_at": utc_now()}, deep=True)
            self._subscriptions[webhook_id] = updated
            return self._copy(updated)

    async def delete_subscription(self, webhook_id: str, user_id: str) -> bool:
        async with self._lock:
            if self._owned(webhook_id, user_id) is None:
                return False
            del self._subscriptions[webhook_id]
            self._attempts = [a for a in self._attempts if a.webhook_id != webhook_id]
            return True

    async def set_secret(self, webhook_id: str, user_id: str, secret: str) -> bool:
        async with self._lock:
            subscription = self._owned(webhook_id, user_id)
            if subscription is None:
                return False
            subscription.secret = secret
            subscription.updated_at = utc_now()
            return True

    async def touch_last_triggered(self, webhook_ids: Sequence[str], at: datetime) -> None:
        async with self._lock:
            for webhook_id in webhook_ids:
                subscription = self._subscriptions.get(webhook_id)
                if subscription is not None:
                    subscription.last_triggered_at = at

    async def record_failure(self, webhook_id: str, threshold: int) -> FailureBookkeeping | None:
        async with self._lock:
            subscription = self._subscriptions.get(webhook_id)
            if subscription is None:
                return None
            subscription.failure_count += 1
            if subscription.failure_count >= threshold:
                subscription.active = False
            subscription.updated_at = utc_now()
            return FailureBookkeeping(
                webhook_id=webhook_id,
                failure_count=subscription.failure_count,
                active=subscription.active,
                deactivated=subscription.failure_count >= threshold,
            )

    async def record_success(self, webhook_id: str) -> None:
        async with self._lock:
            subscription = self._subscriptions.get(webhook_id)
            if subscription is not None:
                subscription.failure_count = 0

    async def append_delivery_attempt(self, attempt: DeliveryAttempt) -> str:
        async with self._lock:
            self._attempts.append(attempt.model_copy())
        return attempt.id

    async def list_delivery_attempts(
        self, webhook_id: str, limit: int = 50
    ) -> list[DeliveryAttempt]:
        async with self._lock:
            matching = [a.model_copy() for a in self._attempts if a.webhook_id == webhook_id]
        # Appended in time order; newest first
        matching.reverse()
        return matching[:limit]
