"""Webhook subscription management.

The registry owns every invariant a subscription must satisfy when it is
written: a valid URL (HTTPS only in production), a non-empty event list
drawn from the closed taxonomy, and the per-owner subscription limit.
All operations are owner-scoped; a webhook that exists but belongs to a
different user is reported as not found.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from pydantic import HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from beacon.exceptions import NotFoundError, ValidationError
from beacon.models import (
    CreatedWebhook,
    SecretRotation,
    WebhookSubscription,
    filter_known_events,
)
from beacon.policies import log_and_continue

from .signature import generate_secret

if TYPE_CHECKING:
    from beacon.models import DeliveryResult
    from beacon.storage import WebhookStore

logger = logging.getLogger(__name__)

_URL_ADAPTER: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)

MAX_DESCRIPTION_LENGTH = 500

TestSender = Callable[[WebhookSubscription], Awaitable["DeliveryResult"]]


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


class WebhookRegistry:
    """CRUD over webhook subscriptions.

    Example:
        ```python
        registry = WebhookRegistry(store, production=True, test_sender=scheduler.send_test)
        created = await registry.create(
            user_id="user_123",
            url="https://example.com/hooks",
            events=["mood.logged", "task.completed"],
        )
        print(created.secret)  # only shown here and on regeneration
        ```
    """

    def __init__(
        self,
        store: WebhookStore,
        *,
        production: bool = False,
        max_per_user: int = 10,
        test_sender: TestSender | None = None,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Subscription store.
            production: Require HTTPS URLs.
            max_per_user: Subscriptions a single owner may hold.
            test_sender: Called with each new subscription to fire its test event.
        """
        self._store = store
        self._production = production
        self._max_per_user = max_per_user
        self._test_sender = test_sender

    @property
    def max_per_user(self) -> int:
        return self._max_per_user

    def validate_url(self, url: str) -> str:
        """Check that url is an absolute http(s) URL with a host.

        Returns:
            The URL exactly as supplied.

        Raises:
            ValidationError: If the URL is malformed, or not HTTPS in production.
        """
        if not isinstance(url, str) or not url.strip():
            raise ValidationError("url", "Invalid webhook URL")
        try:
            parsed = _URL_ADAPTER.validate_python(url)
        except PydanticValidationError as e:
            raise ValidationError("url", "Invalid webhook URL") from e
        if not parsed.host:
            raise ValidationError("url", "Invalid webhook URL")
        if self._production and parsed.scheme != "https":
            raise ValidationError("url", "Invalid webhook URL. Must be HTTPS.")
        return url

    @staticmethod
    def validate_events(events: list[str]) -> list[str]:
        """Filter events to the taxonomy, keeping order and dropping duplicates.

        Raises:
            ValidationError: If no valid event type remains.
        """
        if not isinstance(events, list):
            raise ValidationError("events", "At least one valid event type is required")
        known = filter_known_events(events)
        if not known:
            raise ValidationError("events", "At least one valid event type is required")
        dropped = [e for e in events if e not in known]
        if dropped:
            logger.debug("Dropped unknown event types: %s", dropped)
        return known

    @staticmethod
    def validate_description(description: str | None) -> str | None:
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(
                "description", f"Must be at most {MAX_DESCRIPTION_LENGTH} characters"
            )
        return description

    async def create(
        self,
        user_id: str,
        url: str,
        events: list[str],
        description: str | None = None,
        secret: str | None = None,
    ) -> CreatedWebhook:
        """Register a new webhook and fire its test event.

        The test delivery runs synchronously but its outcome never fails
        creation.

        Raises:
            ValidationError: Invalid URL, events or description.
            LimitExceededError: The owner already holds max_per_user webhooks.
        """
        subscription = WebhookSubscription(
            user_id=user_id,
            url=self.validate_url(url),
            events=self.validate_events(events),
            description=self.validate_description(description),
            secret=secret or generate_secret(),
        )
        stored = await self._store.insert_subscription(subscription, self._max_per_user)
        logger.info("Webhook created: %s for user %s", stored.id, user_id)

        if self._test_sender is not None:
            async with log_and_continue("webhook.create_test_send", webhook_id=stored.id):
                result = await self._test_sender(stored)
                if not result.success:
                    logger.info("Initial test delivery to %s failed: %s", stored.url, result.error)

        return CreatedWebhook(webhook=stored, secret=subscription.secret)

    async def get(self, webhook_id: str, user_id: str) -> WebhookSubscription:
        """Get an owned webhook.

        Raises:
            NotFoundError: If no webhook with this ID belongs to user_id.
        """
        subscription = await self._store.get_subscription(webhook_id, user_id)
        if subscription is None:
            raise NotFoundError("webhook", webhook_id)
        return subscription

    async def update(
        self,
        webhook_id: str,
        user_id: str,
        *,
        url: str = UNSET,
        events: list[str] = UNSET,
        description: str | None = UNSET,
        active: bool = UNSET,
    ) -> WebhookSubscription:
        """Change the supplied fields of an owned webhook.

        Raises:
            ValidationError: No field supplied, or a supplied value is invalid.
            NotFoundError: If no webhook with this ID belongs to user_id.
        """
        fields: dict[str, Any] = {}
        if url is not UNSET:
            fields["url"] = self.validate_url(url)
        if events is not UNSET:
            fields["events"] = self.validate_events(events)
        if description is not UNSET:
            fields["description"] = self.validate_description(description)
        if active is not UNSET:
            if not isinstance(active, bool):
                raise ValidationError("active", "Must be a boolean")
            fields["active"] = active
        if not fields:
            raise ValidationError("update", "No updates provided")

        updated = await self._store.update_subscription(webhook_id, user_id, fields)
        if updated is None:
            raise NotFoundError("webhook", webhook_id)
        logger.info("Webhook updated: %s (%s)", webhook_id, ", ".join(sorted(fields)))
        return updated

    async def delete(self, webhook_id: str, user_id: str) -> None:
        """Hard-delete an owned webhook together with its delivery log.

        Raises:
            NotFoundError: If no webhook with this ID belongs to user_id.
        """
        if not await self._store.delete_subscription(webhook_id, user_id):
            raise NotFoundError("webhook", webhook_id)
        logger.info("Webhook deleted: %s", webhook_id)

    async def regenerate_secret(self, webhook_id: str, user_id: str) -> SecretRotation:
        """Replace the signing secret; the old one stops working immediately.

        Raises:
            NotFoundError: If no webhook with this ID belongs to user_id.
        """
        secret = generate_secret()
        if not await self._store.set_secret(webhook_id, user_id, secret):
            raise NotFoundError("webhook", webhook_id)
        logger.info("Webhook secret regenerated: %s", webhook_id)
        return SecretRotation(webhook_id=webhook_id, secret=secret)

    async def toggle(self, webhook_id: str, user_id: str) -> WebhookSubscription:
        """Flip the active flag. failure_count is left as it is.

        Raises:
            NotFoundError: If no webhook with this ID belongs to user_id.
        """
        current = await self.get(webhook_id, user_id)
        updated = await self._store.update_subscription(
            webhook_id, user_id, {"active": not current.active}
        )
        if updated is None:
            raise NotFoundError("webhook", webhook_id)
        logger.info("Webhook %s: %s", "enabled" if updated.active else "disabled", webhook_id)
        return updated

    # Keep last: shadows the builtin inside the class body
    async def list(self, user_id: str) -> list[WebhookSubscription]:
        """All webhooks of an owner, newest first."""
        return await self._store.list_subscriptions(user_id)
