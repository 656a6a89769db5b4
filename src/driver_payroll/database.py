"""Database connection, session and transaction management."""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from driver_payroll.config import get_settings
from driver_payroll.errors import StorageError
from driver_payroll.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


def get_engine(database_url: str | None = None) -> AsyncEngine:
    """Create async database engine."""
    url = database_url or get_settings().database_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False)
    return create_async_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db(
    database_url: str | None = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine(database_url)
        _session_factory = async_sessionmaker(
            _engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _engine, _session_factory


async def dispose_db() -> None:
    """Dispose the global engine (application shutdown, tests)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    _, factory = init_db()
    async with factory() as session:
        yield session


# SQLite allows a single writer; serialize writes per event loop.
_sqlite_write_locks: weakref.WeakKeyDictionary[
    asyncio.AbstractEventLoop, asyncio.Lock
] = weakref.WeakKeyDictionary()


def _sqlite_write_lock() -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    lock = _sqlite_write_locks.get(loop)
    if lock is None:
        lock = asyncio.Lock()
        _sqlite_write_locks[loop] = lock
    return lock


def _is_postgres(session: AsyncSession) -> bool:
    return session.get_bind().dialect.name == "postgresql"


async def advisory_lock(session: AsyncSession, lock_key: str) -> None:
    """Take a transaction-scoped lock on a key inside an open ``atomic`` block.

    No-op on SQLite, where ``atomic`` already serializes all writers.
    """
    if _is_postgres(session):
        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"),
            {"lock_key": lock_key},
        )


@asynccontextmanager
async def atomic(
    session: AsyncSession,
    lock_key: str | None = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Run a block as one write transaction.

    Commits when the block exits cleanly and rolls back on any exception,
    so no partial write is ever visible. When ``lock_key`` is given, all
    transactions using the same key are serialized (PostgreSQL advisory
    transaction lock; SQLite is already serialized by the writer lock).

    Raises StorageError if the database rejects the transaction. A rollback
    expires every object loaded through the session, so callers keep ids
    rather than ORM instances across a failed block.
    """
    local_lock = None if _is_postgres(session) else _sqlite_write_lock()
    if local_lock is not None:
        await local_lock.acquire()
    try:
        # Anything read before the block must not leak a stale snapshot in.
        if session.in_transaction():
            await session.commit()
        try:
            if lock_key is not None:
                await advisory_lock(session, lock_key)
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.warning("Transaction rolled back: %s", exc)
            raise StorageError(f"Transaction failed: {exc}") from exc
        except BaseException:
            await session.rollback()
            raise
    finally:
        if local_lock is not None:
            local_lock.release()
