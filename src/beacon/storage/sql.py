"""SQLAlchemy storage client for Beacon.

Combines subscription and delivery-log operations through mixins over a
shared async engine. Works with SQLite (aiosqlite) and PostgreSQL
(asyncpg); both support the ``UPDATE ... RETURNING`` used for atomic
failure bookkeeping.

Example:
    ```python
    from beacon.storage import SQLWebhookStore

    async with SQLWebhookStore("sqlite+aiosqlite:///./beacon.db") as store:
        webhooks = await store.list_subscriptions("user_123")
    ```
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from beacon.config import settings

from .base import WebhookStore
from .deliveries import DeliveryLogMixin
from .subscriptions import SubscriptionMixin
from .tables import Base

logger = logging.getLogger(__name__)


def _emit_sqlite_begin(engine: AsyncEngine) -> None:
    """Let SQLAlchemy emit BEGIN itself instead of the sqlite3 module.

    The driver otherwise defers BEGIN until the first write, so a read that
    guards a write runs outside the transaction.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn: Any) -> None:
        mode = conn.get_execution_options().get("sqlite_begin", "")
        conn.exec_driver_sql(f"BEGIN {mode}".strip())


class SQLStorageBase:
    """Engine lifecycle and session factory shared by the SQL mixins."""

    def __init__(self, url: str | None = None, echo: bool = False) -> None:
        """Initialize storage client.

        Args:
            url: SQLAlchemy async URL. Defaults to settings.database_url.
            echo: Log emitted SQL.
        """
        self._url = url or settings.database_url
        self._echo = echo
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None
        self._locking_sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get the session factory, raising if not initialized."""
        if self._sessions is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._sessions

    @property
    def locking_session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Sessions whose transaction takes the database write lock at BEGIN.

        On SQLite this is ``BEGIN IMMEDIATE``, which serializes writers that
        read before they write. Other backends get a plain transaction and
        lock explicitly where needed.
        """
        if self._locking_sessions is None:
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self._locking_sessions

    def _engine_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"echo": self._echo}
        if ":memory:" in self._url:
            # One shared connection, otherwise each checkout sees an empty database
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}
        return kwargs

    async def initialize(self) -> None:
        """Create the engine and ensure tables exist."""
        self._engine = create_async_engine(self._url, **self._engine_kwargs())
        if self._engine.dialect.name == "sqlite" and ":memory:" not in self._url:
            _emit_sqlite_begin(self._engine)
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)
        self._locking_sessions = async_sessionmaker(
            self._engine.execution_options(sqlite_begin="IMMEDIATE"),
            expire_on_commit=False,
        )
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("SQL webhook store initialized (%s)", self._engine.url.render_as_string())

    async def close(self) -> None:
        """Dispose of the engine."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None
            self._locking_sessions = None


class SQLWebhookStore(SubscriptionMixin, DeliveryLogMixin, SQLStorageBase, WebhookStore):
    """Async SQL storage for webhook subscriptions and delivery attempts."""
