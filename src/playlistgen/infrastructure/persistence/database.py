"""Database session management."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, StaticPool

from playlistgen.config import DatabaseSettings
from playlistgen.domain.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def _is_memory_url(url: str) -> bool:
    return ":memory:" in url or url.rstrip("/").endswith("sqlite+aiosqlite:")


class Database:
    """Owned handle to the track store.

    Hey future me - this is THE single logical connection! The engine holds exactly one
    SQLite connection and session_scope() hands it out to one transaction at a time, so the
    reconciliation transaction and the workers' job-status writes can never interleave.
    The lock is the "store acts as an implicit mutex" rule - it also caps worker write
    throughput no matter how many workers you start. Create one per process and pass it
    around; whoever creates it closes it.
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        """Initialize database with settings."""
        if not settings.url.strip():
            raise ConfigurationError("database URL is required")
        self.settings = settings

        engine_kwargs: dict[str, Any] = {"echo": settings.echo}
        if "sqlite" in settings.url:
            engine_kwargs["connect_args"] = {
                "check_same_thread": False,
                "timeout": settings.pool_timeout,
            }
            if _is_memory_url(settings.url):
                # In-memory DBs live and die with their connection - keep one forever.
                engine_kwargs["poolclass"] = StaticPool
            else:
                engine_kwargs.update(
                    {
                        "poolclass": AsyncAdaptedQueuePool,
                        "pool_size": 1,
                        "max_overflow": 0,
                        "pool_timeout": settings.pool_timeout,
                        "pool_recycle": 3600,
                    }
                )
        else:
            engine_kwargs.update(
                {"pool_size": 1, "max_overflow": 0, "pool_pre_ping": True}
            )

        self._engine = create_async_engine(settings.url, **engine_kwargs)

        if "sqlite" in settings.url:
            self._enable_sqlite_foreign_keys()

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._lock = asyncio.Lock()

    def _enable_sqlite_foreign_keys(self) -> None:
        """Enable foreign key constraints for SQLite.

        SQLite has foreign keys disabled by default; without them the CASCADE
        deletes of sync-status and job rows silently do nothing.
        """

        @event.listens_for(self._engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, _connection_record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            logger.debug("Enabled foreign keys for SQLite connection")

    @asynccontextmanager
    async def session_scope(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a serialized transactional scope.

        Commits when the block exits normally, rolls back and re-raises on any
        exception.
        """
        async with self._lock:
            async with self._session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except BaseException:
                    # Broad on purpose: cancellation must roll back too. Always re-raised.
                    await session.rollback()
                    raise

    async def close(self) -> None:
        """Close database connection."""
        await self._engine.dispose()

    async def create_tables(self) -> None:
        """Create all tables that don't exist yet."""
        from playlistgen.infrastructure.persistence.models import Base

        async with self._lock:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)


async def open_database(settings: DatabaseSettings) -> Database:
    """Create a Database and make sure the schema exists."""
    database = Database(settings)
    try:
        await database.create_tables()
    except Exception:
        await database.close()
        raise
    logger.info("database.opened", extra={"url": settings.url})
    return database
