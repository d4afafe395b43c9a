"""SQLite backend for running the status job without PostgreSQL.

The ``jobs`` CLI and local development point ``JOBS_DATABASE_URL`` at a file
such as ``sqlite+aiosqlite:///.agency-jobs/state.db``.  The ORM tables are
shared with PostgreSQL; what differs:

* ``FOR UPDATE SKIP LOCKED`` is dropped by the SQLite compiler, which is
  fine for a single scheduler process.
* JSONB columns are stored as JSON text and notification dedup uses
  ``json_extract`` instead of ``@>`` containment.
* Timestamps come back naive; readers coerce them to UTC.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

_PRAGMAS = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=5000",
)


def sqlite_engine(database_url: str) -> AsyncEngine:
    """Create an aiosqlite engine for *database_url*.

    The parent directory of a file database is created on demand.  An empty
    database path (``sqlite+aiosqlite://``) or ``:memory:`` gives an
    in-memory store.
    """
    url = make_url(database_url).set(drivername="sqlite+aiosqlite")
    database = url.database or ":memory:"
    if database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(url, connect_args={"check_same_thread": False})

    @event.listens_for(engine.sync_engine, "connect")
    def _apply_pragmas(dbapi_conn: object, _: object) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[attr-defined]
        for pragma in _PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    logger.info("SQLite job store at %s", database)
    return engine
