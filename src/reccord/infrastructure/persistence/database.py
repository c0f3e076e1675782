"""Database engine and transactional session scope."""

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from reccord.config import DatabaseSettings, Settings

logger = logging.getLogger(__name__)

# Anything that hands out a transactional session, usually Database.session_scope
SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _engine_options(db_settings: DatabaseSettings) -> dict[str, Any]:
    url = db_settings.url
    options: dict[str, Any] = {
        "echo": db_settings.echo,
        "pool_pre_ping": db_settings.pool_pre_ping,
    }
    if not url.startswith("sqlite"):
        options.update(
            pool_size=db_settings.pool_size,
            max_overflow=db_settings.max_overflow,
            pool_timeout=db_settings.pool_timeout,
            pool_recycle=db_settings.pool_recycle,
        )
        return options

    # Worker sweep and API requests write from the same process. Give SQLite time
    # to hand over the write lock instead of failing with "database is locked".
    options["connect_args"] = {"check_same_thread": False, "timeout": 30}
    # Hey future me - an in-memory SQLite DB lives and dies with ONE connection.
    # StaticPool keeps it around so every session sees the same tables. Tests rely on this.
    if ":memory:" in url:
        options["poolclass"] = StaticPool
    return options


class Database:
    """Owns the async engine and hands out session scopes.

    One instance per process, built in the lifespan (or by the CLI script) and
    passed down explicitly. Nothing imports a global engine.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        url = settings.database.url
        self._engine = create_async_engine(url, **_engine_options(settings.database))
        if url.startswith("sqlite"):
            self._install_sqlite_pragmas()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    # Listen up - foreign keys are OFF by default in SQLite. Deleting a list relies on
    # ON DELETE CASCADE to drop its items and sync config, so switch them on per connection.
    def _install_sqlite_pragmas(self) -> None:
        @event.listens_for(self._engine.sync_engine, "connect")
        def _on_connect(dbapi_conn: Any, _connection_record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """One transaction: commit when the block exits, rollback and re-raise on error.

        Repositories only flush. Whatever happens inside one scope (replacing a
        list's items and moving its watermark, for example) lands atomically.
        """
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Dispose the engine and its pooled connections."""
        await self._engine.dispose()
        logger.debug("Database engine disposed")

    async def create_tables(self) -> None:
        """Create every table from the ORM metadata (tests and first local run)."""
        from reccord.infrastructure.persistence.models import Base

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
