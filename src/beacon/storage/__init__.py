"""Storage for webhook subscriptions and delivery attempts.

Example:
    ```python
    from beacon.storage import create_store

    store = create_store(settings)
    async with store:
        subscriptions = await store.list_subscriptions("user_123")
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import MUTABLE_FIELDS, WebhookStore
from .memory import InMemoryWebhookStore
from .sql import SQLWebhookStore

if TYPE_CHECKING:
    from beacon.config import Settings


def create_store(settings: Settings) -> WebhookStore:
    """Build the store selected by settings.storage_backend."""
    if settings.storage_backend == "memory":
        return InMemoryWebhookStore()
    return SQLWebhookStore(settings.database_url)


__all__ = [
    "InMemoryWebhookStore",
    "MUTABLE_FIELDS",
    "SQLWebhookStore",
    "WebhookStore",
    "create_store",
]
