"""
Project CRUD endpoints, plus per-project scan and result listings.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reconsuite.api.deps import get_db_session, get_executor, validate_project_exists
from reconsuite.api.schemas.project import ProjectCreate, ProjectResponse, ProjectUpdate
from reconsuite.api.schemas.scan import ResultResponse, ScanSummary
from reconsuite.engine.executor import ScanExecutor
from reconsuite.models.project import Project
from reconsuite.models.result import Result
from reconsuite.models.scan import Scan

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[ProjectResponse], summary="List projects")
async def list_projects(db: AsyncSession = Depends(get_db_session)) -> list[ProjectResponse]:
    """Return every project, most recently updated first."""
    result = await db.execute(select(Project).order_by(Project.updated_at.desc(), Project.id.desc()))
    return [ProjectResponse.model_validate(p) for p in result.scalars().all()]


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
)
async def create_project(
    body: ProjectCreate,
    db: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    project = Project(name=body.name, description=body.description, scope=body.scope)
    db.add(project)
    await db.flush()
    await db.refresh(project)

    logger.info(
        "Project %s created", project.id,
        extra={"action": "create_project", "target": project.name},
    )
    return ProjectResponse.model_validate(project)


@router.get("/{project_id}", response_model=ProjectResponse, summary="Get a project")
async def get_project(project: Project = Depends(validate_project_exists)) -> ProjectResponse:
    return ProjectResponse.model_validate(project)


@router.put("/{project_id}", response_model=ProjectResponse, summary="Update a project")
async def update_project(
    body: ProjectUpdate,
    project: Project = Depends(validate_project_exists),
    db: AsyncSession = Depends(get_db_session),
) -> ProjectResponse:
    """Apply the fields present in *body*; ``updated_at`` is refreshed."""
    for field_name, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(project, field_name, value.strip() if field_name == "name" else value)
    await db.flush()
    await db.refresh(project)
    return ProjectResponse.model_validate(project)


@router.delete("/{project_id}", summary="Delete a project and its scans")
async def delete_project(
    project: Project = Depends(validate_project_exists),
    db: AsyncSession = Depends(get_db_session),
    executor: ScanExecutor = Depends(get_executor),
) -> dict[str, str]:
    """Delete the project; its scans and results go with it.

    Scans of the project that are still in flight are cancelled first.
    """
    scan_ids = (
        await db.execute(select(Scan.id).where(Scan.project_id == project.id))
    ).scalars().all()
    for scan_id in scan_ids:
        executor.cancel_scan(scan_id)

    await db.delete(project)
    await db.flush()

    logger.info(
        "Project %s deleted with %d scan(s)", project.id, len(scan_ids),
        extra={"action": "delete_project", "target": project.name},
    )
    return {"status": "deleted"}


@router.get(
    "/{project_id}/scans",
    response_model=list[ScanSummary],
    summary="List the scans of a project",
)
async def list_project_scans(
    project: Project = Depends(validate_project_exists),
    db: AsyncSession = Depends(get_db_session),
) -> list[ScanSummary]:
    stmt = (
        select(Scan)
        .where(Scan.project_id == project.id)
        .order_by(Scan.created_at.desc(), Scan.id.desc())
    )
    result = await db.execute(stmt)
    return [ScanSummary.model_validate(scan) for scan in result.scalars().all()]


@router.get(
    "/{project_id}/results",
    response_model=list[ResultResponse],
    summary="List the results of every scan in a project",
)
async def list_project_results(
    project: Project = Depends(validate_project_exists),
    db: AsyncSession = Depends(get_db_session),
) -> list[ResultResponse]:
    stmt = (
        select(Result)
        .join(Scan, Result.scan_id == Scan.id)
        .where(Scan.project_id == project.id)
        .order_by(Result.id)
    )
    result = await db.execute(stmt)
    return [ResultResponse.model_validate(row) for row in result.scalars().all()]
