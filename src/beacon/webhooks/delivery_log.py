"""Append-only audit log of delivery attempts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from beacon.policies import log_and_continue

if TYPE_CHECKING:
    from beacon.models import DeliveryAttempt
    from beacon.storage import WebhookStore

logger = logging.getLogger(__name__)


class DeliveryLog:
    """Writes and reads DeliveryAttempt rows.

    Writing is best-effort: a failed insert is logged and reported as
    False, and never changes how the attempt itself is judged.
    """

    def __init__(self, store: WebhookStore) -> None:
        self._store = store

    async def record(self, attempt: DeliveryAttempt) -> bool:
        """Append one attempt row.

        Returns:
            True if the row was written.
        """
        async with log_and_continue(
            "delivery_log.append",
            webhook_id=attempt.webhook_id,
            job_id=attempt.job_id,
            attempt=attempt.attempt,
        ) as outcome:
            await self._store.append_delivery_attempt(attempt)
        return not outcome.failed

    async def recent(self, webhook_id: str, limit: int = 50) -> list[DeliveryAttempt]:
        """Most recent attempts for a webhook, newest first."""
        return await self._store.list_delivery_attempts(webhook_id, limit=limit)
