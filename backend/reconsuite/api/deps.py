"""
Shared FastAPI dependency functions for the ReconSuite API.

Provides database session injection, access to the long-lived engine
objects stored on ``app.state`` by the lifespan handler, and common
validation helpers reused across endpoint modules.
"""

from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from reconsuite.core.database import async_session_factory
from reconsuite.engine.broadcast import BroadcastHub
from reconsuite.engine.executor import ScanExecutor
from reconsuite.engine.store import ScanRepository
from reconsuite.models.project import Project
from reconsuite.models.scan import Scan


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session and guarantee cleanup on exit.

    The session is committed automatically when the request handler finishes
    without raising an exception.  On failure the transaction is rolled back.
    In both cases the session is closed.

    Yields:
        An :class:`~sqlalchemy.ext.asyncio.AsyncSession` bound to the
        application engine.
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


def get_executor(request: Request) -> ScanExecutor:
    return request.app.state.executor


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_repository(request: Request) -> ScanRepository:
    return request.app.state.repository


async def validate_scan_exists(
    scan_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> Scan:
    """Load a :class:`~reconsuite.models.scan.Scan` by its primary key or raise 404.

    Args:
        scan_id: The integer primary key of the scan to load.
        db: The database session (injected automatically).

    Raises:
        HTTPException: *404 Not Found* if no scan with the given ID exists.
    """
    scan = await db.get(Scan, scan_id)
    if scan is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scan with id '{scan_id}' not found.",
        )
    return scan


async def validate_project_exists(
    project_id: int,
    db: AsyncSession = Depends(get_db_session),
) -> Project:
    """Load a :class:`~reconsuite.models.project.Project` or raise 404."""
    project = await db.get(Project, project_id)
    if project is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Project with id '{project_id}' not found.",
        )
    return project
