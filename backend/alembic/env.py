"""
Alembic migration environment for ReconSuite.

Runs migrations through the same async driver the application uses
(``aiosqlite`` or ``asyncpg``) and imports every ORM model so that
``--autogenerate`` can detect schema changes.

Usage::

    # Apply all pending migrations (run from the ``backend`` directory)
    alembic upgrade head

    # Generate a new migration after model changes
    alembic revision --autogenerate -m "describe change"

    # Rollback one migration
    alembic downgrade -1
"""

from __future__ import annotations

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from reconsuite.config import get_settings

# Import Base and all models so that Base.metadata contains every table.
from reconsuite.core.database import Base
from reconsuite.models import Project, Result, Scan  # noqa: F401 – imported for side-effects

# ── Alembic Config object ────────────────────────────────────────────────────
config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# The application settings are the single source of truth for the URL.
settings = get_settings()
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)


# ── Offline migrations (emit SQL without a live database) ────────────────────

def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to the script output."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=url is not None and url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


# ── Online migrations (connect to a live database) ───────────────────────────

def do_run_migrations(connection: Connection) -> None:
    """Execute migrations inside an already-established connection."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Create an async engine and run migrations within its connection."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode through the async engine."""
    asyncio.run(run_async_migrations())


# ── Entry point ──────────────────────────────────────────────────────────────

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
