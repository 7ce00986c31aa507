"""
Async SQLAlchemy engine, session factory, and declarative base.

Provides:
- ``engine``  -- the async engine bound to the configured ``DATABASE_URL``.
- ``async_session_factory`` -- a session-maker that produces ``AsyncSession`` instances.
- ``Base`` -- the declarative base class for all ORM models.
- ``get_db_session`` -- an async generator suitable for FastAPI ``Depends()``.
- ``create_schema`` -- creates all tables (local/SQLite deployments).
"""

from __future__ import annotations

from typing import Any, AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from reconsuite.config import get_settings

# ── Constants ────────────────────────────────────────────────────────────────

_POOL_SIZE: int = 20
_MAX_OVERFLOW: int = 10
_POOL_TIMEOUT_SECONDS: int = 30
_POOL_RECYCLE_SECONDS: int = 1800  # 30 minutes


# ── Declarative Base ─────────────────────────────────────────────────────────

class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models in the project."""


# ── Engine & Session Factory ─────────────────────────────────────────────────

def _enable_sqlite_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, *, echo: bool = False, **kwargs: Any) -> AsyncEngine:
    """Create an async engine for *url*.

    Pool sizing only applies to server databases; SQLite gets its default
    pool and has ``ON DELETE CASCADE`` switched on for every connection.

    Args:
        url: SQLAlchemy database URL (``sqlite+aiosqlite://`` or
            ``postgresql+asyncpg://``).
        echo: Log every SQL statement.
        **kwargs: Extra arguments forwarded to ``create_async_engine``.

    Returns:
        A configured :class:`AsyncEngine`.
    """
    if url.startswith("sqlite"):
        new_engine = create_async_engine(url, echo=echo, **kwargs)
        event.listen(new_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        return new_engine

    options: dict[str, Any] = {
        "pool_size": _POOL_SIZE,
        "max_overflow": _MAX_OVERFLOW,
        "pool_timeout": _POOL_TIMEOUT_SECONDS,
        "pool_recycle": _POOL_RECYCLE_SECONDS,
        "pool_pre_ping": True,
    }
    options.update(kwargs)
    return create_async_engine(url, echo=echo, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session-maker with the project's session defaults."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


_settings = get_settings()
engine: AsyncEngine = build_engine(_settings.DATABASE_URL, echo=_settings.DEBUG)

async_session_factory: async_sessionmaker[AsyncSession] = build_session_factory(engine)


async def create_schema(bind: AsyncEngine) -> None:
    """Create every table known to :class:`Base` if it does not exist yet."""
    import reconsuite.models  # noqa: F401  (register mappers)

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ── Dependency Injection Helper ──────────────────────────────────────────────

async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession`` and guarantee cleanup on exit.

    The session is committed if no exception occurs; otherwise it is rolled
    back.  In both cases the session is closed at the end.
    """
    session = async_session_factory()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()
