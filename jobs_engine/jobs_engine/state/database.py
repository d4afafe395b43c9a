"""Engine construction for the agency job store.

``postgresql+asyncpg://`` URLs get a pooled engine with per-connection
statement and lock timeouts, so a stuck row lock fails one update attempt
instead of hanging the scheduled run.  ``sqlite+aiosqlite://`` URLs are
delegated to :mod:`jobs_engine.state.sqlite_adapter`.

Tenancy is explicit: repositories receive the agency identifier at
construction and filter on it, so no session-level tenant context is set.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)

_STATEMENT_TIMEOUT_MS = 30_000
_LOCK_TIMEOUT_MS = 10_000


def get_engine(
    database_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create an async engine for *database_url*.

    Parameters
    ----------
    database_url:
        ``postgresql+asyncpg://...`` or ``sqlite+aiosqlite:///path``.
    pool_size, max_overflow:
        PostgreSQL pool sizing; SQLite ignores both.
    """
    if database_url.startswith("sqlite"):
        from jobs_engine.state.sqlite_adapter import sqlite_engine

        return sqlite_engine(database_url)

    engine = create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        connect_args={
            "server_settings": {
                "application_name": "agency-jobs",
                "statement_timeout": str(_STATEMENT_TIMEOUT_MS),
                "lock_timeout": str(_LOCK_TIMEOUT_MS),
            }
        },
    )
    logger.info("PostgreSQL engine ready (pool_size=%d, max_overflow=%d)", pool_size, max_overflow)
    return engine


def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the job services.

    Objects stay usable after commit because the ledger and the updater hand
    committed rows back to callers that build response models from them.
    """
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create every table on *engine* (dev and SQLite only; PostgreSQL uses Alembic)."""
    from jobs_engine.state.tables import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Job store tables created on %s", engine.url.get_backend_name())
