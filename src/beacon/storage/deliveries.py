"""Delivery-log operations for the SQL store."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from beacon.models import DeliveryAttempt

from .retry import db_retry
from .tables import DeliveryAttemptRow

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class DeliveryLogMixin:
    """Mixin providing append-only delivery-log operations for SQLWebhookStore."""

    session_factory: async_sessionmaker[AsyncSession]

    async def append_delivery_attempt(self, attempt: DeliveryAttempt) -> str:
        async with self.session_factory() as session, session.begin():
            session.add(DeliveryAttemptRow.from_model(attempt))
        return attempt.id

    @db_retry
    async def list_delivery_attempts(
        self, webhook_id: str, limit: int = 50
    ) -> list[DeliveryAttempt]:
        stmt = (
            select(DeliveryAttemptRow)
            .where(DeliveryAttemptRow.webhook_id == webhook_id)
            .order_by(DeliveryAttemptRow.created_at.desc())
            .limit(limit)
        )
        async with self.session_factory() as session:
            return [row.to_model() for row in (await session.execute(stmt)).scalars()]
