"""
Aggregated APIRouter for the REST API.

All endpoint routers are included here and exposed as a single ``router``
instance that is mounted by the FastAPI application in ``reconsuite.main``.
The prefix ``/api`` is applied by the application, so sub-routers only
declare their own resource prefix (e.g. ``/scans``, ``/projects``).
"""

from __future__ import annotations

from fastapi import APIRouter

from reconsuite.api.v1 import projects, scans, stats, tools

router = APIRouter()

router.include_router(
    scans.router,
    prefix="/scans",
    tags=["scans"],
)
router.include_router(
    projects.router,
    prefix="/projects",
    tags=["projects"],
)
router.include_router(
    tools.router,
    prefix="/tools",
    tags=["tools"],
)
router.include_router(
    stats.router,
    prefix="/stats",
    tags=["stats"],
)
