"""Subscription operations for the SQL store."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, delete, func, select, update

from beacon.exceptions import LimitExceededError
from beacon.models import FailureBookkeeping, WebhookSubscription, utc_now

from .base import check_mutable_fields
from .retry import db_retry
from .tables import DeliveryAttemptRow, WebhookRow

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class SubscriptionMixin:
    """Mixin providing subscription operations for SQLWebhookStore.

    This mixin expects the following from the base class:
    - session_factory: async_sessionmaker[AsyncSession]
    - locking_session_factory: sessions that take the write lock at BEGIN
    """

    session_factory: async_sessionmaker[AsyncSession]
    locking_session_factory: async_sessionmaker[AsyncSession]

    async def insert_subscription(
        self, subscription: WebhookSubscription, max_per_user: int
    ) -> WebhookSubscription:
        async with self.locking_session_factory() as session, session.begin():
            conn = await session.connection()
            if conn.dialect.name == "postgresql":
                # Row locks cannot cover rows that do not exist yet; lock the owner instead
                await session.execute(
                    select(func.pg_advisory_xact_lock(func.hashtext(subscription.user_id)))
                )
            owned = await session.execute(
                select(func.count())
                .select_from(WebhookRow)
                .where(WebhookRow.user_id == subscription.user_id)
            )
            if owned.scalar_one() >= max_per_user:
                raise LimitExceededError(max_per_user)
            session.add(WebhookRow.from_model(subscription))
        return subscription

    @db_retry
    async def get_subscription(
        self, webhook_id: str, user_id: str | None = None
    ) -> WebhookSubscription | None:
        stmt = select(WebhookRow).where(WebhookRow.id == webhook_id)
        if user_id is not None:
            stmt = stmt.where(WebhookRow.user_id == user_id)
        async with self.session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return row.to_model() if row else None

    @db_retry
    async def list_subscriptions(self, user_id: str) -> list[WebhookSubscription]:
        stmt = (
            select(WebhookRow)
            .where(WebhookRow.user_id == user_id)
            .order_by(WebhookRow.created_at.desc())
        )
        async with self.session_factory() as session:
            return [row.to_model() for row in (await session.execute(stmt)).scalars()]

    @db_retry
    async def count_subscriptions(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(WebhookRow).where(WebhookRow.user_id == user_id)
        async with self.session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())

    @db_retry
    async def find_subscriptions_for_event(
        self, event_type: str, user_id: str
    ) -> list[WebhookSubscription]:
        stmt = select(WebhookRow).where(
            WebhookRow.user_id == user_id,
            WebhookRow.active.is_(True),
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        # JSON containment is not portable; filter membership here
        return [row.to_model() for row in rows if event_type in row.events]

    async def update_subscription(
        self, webhook_id: str, user_id: str, fields: dict[str, Any]
    ) -> WebhookSubscription | None:
        check_mutable_fields(fields)
        async with self.locking_session_factory() as session, session.begin():
            row = (
                await session.execute(
                    select(WebhookRow).where(
                        WebhookRow.id == webhook_id, WebhookRow.user_id == user_id
                    )
                )
            ).scalar_one_or_none()
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, list(value) if key == "events" else value)
            row.updated_at = utc_now()
            await session.flush()
            return row.to_model()

    async def delete_subscription(self, webhook_id: str, user_id: str) -> bool:
        async with self.session_factory() as session, session.begin():
            result = await session.execute(
                delete(WebhookRow)
                .where(WebhookRow.id == webhook_id, WebhookRow.user_id == user_id)
                .returning(WebhookRow.id)
                .execution_options(synchronize_session=False)
            )
            if result.first() is None:
                return False
            await session.execute(
                delete(DeliveryAttemptRow)
                .where(DeliveryAttemptRow.webhook_id == webhook_id)
                .execution_options(synchronize_session=False)
            )
            return True

    @db_retry
    async def set_secret(self, webhook_id: str, user_id: str, secret: str) -> bool:
        async with self.session_factory() as session, session.begin():
            result = await session.execute(
                update(WebhookRow)
                .where(WebhookRow.id == webhook_id, WebhookRow.user_id == user_id)
                .values(secret=secret, updated_at=utc_now())
                .returning(WebhookRow.id)
                .execution_options(synchronize_session=False)
            )
            return result.first() is not None

    @db_retry
    async def touch_last_triggered(self, webhook_ids: Sequence[str], at: datetime) -> None:
        if not webhook_ids:
            return
        async with self.session_factory() as session, session.begin():
            await session.execute(
                update(WebhookRow)
                .where(WebhookRow.id.in_(list(webhook_ids)))
                .values(last_triggered_at=at)
                .execution_options(synchronize_session=False)
            )

    async def record_failure(self, webhook_id: str, threshold: int) -> FailureBookkeeping | None:
        # Right-hand expressions see the pre-update row, so failure_count + 1 is the new value
        new_count = WebhookRow.failure_count + 1
        stmt = (
            update(WebhookRow)
            .where(WebhookRow.id == webhook_id)
            .values(
                failure_count=new_count,
                active=case((new_count >= threshold, False), else_=WebhookRow.active),
                updated_at=utc_now(),
            )
            .returning(WebhookRow.failure_count, WebhookRow.active)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session, session.begin():
            row = (await session.execute(stmt)).first()
        if row is None:
            return None
        failure_count, active = int(row[0]), bool(row[1])
        return FailureBookkeeping(
            webhook_id=webhook_id,
            failure_count=failure_count,
            active=active,
            deactivated=failure_count >= threshold,
        )

    @db_retry
    async def record_success(self, webhook_id: str) -> None:
        async with self.session_factory() as session, session.begin():
            await session.execute(
                update(WebhookRow)
                .where(WebhookRow.id == webhook_id)
                .values(failure_count=0)
                .execution_options(synchronize_session=False)
            )
