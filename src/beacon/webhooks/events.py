"""Convenience triggers, one per event type in the taxonomy.

Example:
    ```python
    await service.events.mood_logged("user_123", {"mood": 4, "note": "good day"})
    await service.events.task_completed("user_123", {"task_id": "t_1"})
    ```
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from beacon.models import TriggerResult

Trigger = Callable[[str, str, "dict[str, Any] | None"], Awaitable[TriggerResult]]


class EventTriggers:
    """Named shortcuts for ``trigger_event``."""

    def __init__(self, trigger: Trigger) -> None:
        self._trigger = trigger

    async def _fire(
        self, event_type: str, user_id: str, data: dict[str, Any] | None
    ) -> TriggerResult:
        return await self._trigger(event_type, user_id, data)

    # User events

    async def user_created(self, user_id: str, data: dict[str, Any] | None = None) -> TriggerResult:
        return await self._fire("user.created", user_id, data)

    async def user_updated(self, user_id: str, data: dict[str, Any] | None = None) -> TriggerResult:
        return await self._fire("user.updated", user_id, data)

    async def user_deleted(self, user_id: str, data: dict[str, Any] | None = None) -> TriggerResult:
        return await self._fire("user.deleted", user_id, data)

    # Subscription events

    async def subscription_started(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("subscription.started", user_id, data)

    async def subscription_renewed(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("subscription.renewed", user_id, data)

    async def subscription_cancelled(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("subscription.cancelled", user_id, data)

    async def subscription_expired(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("subscription.expired", user_id, data)

    # Mood events

    async def mood_logged(self, user_id: str, data: dict[str, Any] | None = None) -> TriggerResult:
        return await self._fire("mood.logged", user_id, data)

    async def streak_updated(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("mood.streak_updated", user_id, data)

    async def mood_milestone(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("mood.milestone", user_id, data)

    # Conversation events

    async def conversation_started(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("conversation.started", user_id, data)

    async def message_received(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("conversation.message", user_id, data)

    # Journal, task, buddy, achievement and health events

    async def journal_entry_created(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("journal.entry_created", user_id, data)

    async def task_created(self, user_id: str, data: dict[str, Any] | None = None) -> TriggerResult:
        return await self._fire("task.created", user_id, data)

    async def task_completed(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("task.completed", user_id, data)

    async def buddy_connected(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("buddy.connected", user_id, data)

    async def buddy_activity(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("buddy.activity", user_id, data)

    async def achievement_unlocked(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("achievement.unlocked", user_id, data)

    async def health_data_synced(
        self, user_id: str, data: dict[str, Any] | None = None
    ) -> TriggerResult:
        return await self._fire("health.data_synced", user_id, data)
