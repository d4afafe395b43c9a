"""Alembic environment for the agency job store.

The target URL comes from ``ALEMBIC_DATABASE_URL``, then
``JOBS_DATABASE_URL``, then ``sqlalchemy.url`` in ``alembic.ini``.  The
application talks to PostgreSQL through asyncpg, but migrations run on a
synchronous connection, so async driver names are swapped for their sync
counterparts before Alembic connects.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from jobs_engine.state.tables import Base
from sqlalchemy import create_engine, pool
from sqlalchemy.engine import make_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

_SYNC_DRIVERS = {
    "postgresql+asyncpg": "postgresql+psycopg",
    "postgresql": "postgresql+psycopg",
    "sqlite+aiosqlite": "sqlite",
}


def _migration_url() -> str:
    raw = (
        os.environ.get("ALEMBIC_DATABASE_URL")
        or os.environ.get("JOBS_DATABASE_URL")
        or config.get_main_option("sqlalchemy.url")
    )
    if not raw:
        raise RuntimeError("No database URL: set ALEMBIC_DATABASE_URL or JOBS_DATABASE_URL")

    url = make_url(raw)
    url = url.set(drivername=_SYNC_DRIVERS.get(url.drivername, url.drivername))
    # asyncpg spells it ``ssl``; libpq wants ``sslmode``.
    if "ssl" in url.query:
        query = dict(url.query)
        query["sslmode"] = query.pop("ssl")
        url = url.set(query=query)
    logger.info("Migrating %s database %s", url.get_backend_name(), url.database)
    return url.render_as_string(hide_password=False)


def run_migrations_offline() -> None:
    """Write the migration SQL to stdout instead of executing it."""
    context.configure(
        url=_migration_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_migration_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                compare_type=True,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
