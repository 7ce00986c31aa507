"""
Scan endpoints.

Starting a scan only persists it as ``pending`` and hands it to the
:class:`~reconsuite.engine.executor.ScanExecutor`; the response is sent
before the tool runs.  Live output is available over the WebSocket routes,
and the final state can always be polled here.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reconsuite.api.deps import get_db_session, get_executor, validate_scan_exists
from reconsuite.api.schemas.scan import (
    CancelResponse,
    ResultResponse,
    ScanCreate,
    ScanResponse,
    ScanSummary,
)
from reconsuite.engine.executor import ScanExecutor, ScanValidationError
from reconsuite.models.project import Project
from reconsuite.models.result import Result
from reconsuite.models.scan import Scan

logger = logging.getLogger(__name__)

router = APIRouter()

_RECENT_LIMIT: int = 10


# ---------------------------------------------------------------------------
# POST /scans
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=ScanResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a new scan",
)
async def create_scan(
    body: ScanCreate,
    db: AsyncSession = Depends(get_db_session),
    executor: ScanExecutor = Depends(get_executor),
) -> ScanResponse:
    """Accept a scan and schedule it in the background.

    Args:
        body: The validated scan creation payload.
        db: The database session (injected).
        executor: The application's scan executor (injected).

    Returns:
        The scan in its initial ``pending`` state.

    Raises:
        HTTPException: *404 Not Found* when ``project_id`` does not exist,
            *422 Unprocessable Entity* when the executor rejects the request.
    """
    if body.project_id is not None and await db.get(Project, body.project_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Project with id '{body.project_id}' not found.",
        )

    scan = Scan(
        project_id=body.project_id,
        scan_type=body.scan_type or "",
        tool=body.tool,
        target=body.target,
        parameters=dict(body.parameters),
    )
    try:
        scan = await executor.start_scan(scan)
    except ScanValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc

    logger.info(
        "Scan %s created: %s against %s",
        scan.id,
        scan.tool,
        scan.target,
        extra={"action": "create_scan", "target": scan.target},
    )
    return ScanResponse.model_validate(scan)


# ---------------------------------------------------------------------------
# GET /scans/recent
# ---------------------------------------------------------------------------


@router.get(
    "/recent",
    response_model=list[ScanSummary],
    summary="List the most recent scans",
)
async def list_recent_scans(
    db: AsyncSession = Depends(get_db_session),
) -> list[ScanSummary]:
    """Return the ten newest scans, newest first, without their output."""
    stmt = select(Scan).order_by(Scan.created_at.desc(), Scan.id.desc()).limit(_RECENT_LIMIT)
    result = await db.execute(stmt)
    return [ScanSummary.model_validate(scan) for scan in result.scalars().all()]


# ---------------------------------------------------------------------------
# GET /scans/{scan_id}
# ---------------------------------------------------------------------------


@router.get(
    "/{scan_id}",
    response_model=ScanResponse,
    summary="Get scan status and output",
)
async def get_scan(scan: Scan = Depends(validate_scan_exists)) -> ScanResponse:
    """Return the scan including ``raw_output``.

    The status read here is authoritative: a client that missed the live
    ``done`` event can poll this endpoint until the status is terminal.
    """
    return ScanResponse.model_validate(scan)


@router.get(
    "/{scan_id}/results",
    response_model=list[ResultResponse],
    summary="List structured results of a scan",
)
async def get_scan_results(
    scan: Scan = Depends(validate_scan_exists),
    db: AsyncSession = Depends(get_db_session),
) -> list[ResultResponse]:
    """Return the scan's findings in source order."""
    stmt = select(Result).where(Result.scan_id == scan.id).order_by(Result.id)
    result = await db.execute(stmt)
    return [ResultResponse.model_validate(row) for row in result.scalars().all()]


# ---------------------------------------------------------------------------
# DELETE /scans/{scan_id}
# ---------------------------------------------------------------------------


@router.delete(
    "/{scan_id}",
    response_model=CancelResponse,
    summary="Cancel a scan",
)
async def cancel_scan(
    scan_id: int,
    executor: ScanExecutor = Depends(get_executor),
) -> CancelResponse:
    """Request cancellation of a scan.

    Cancelling a finished or unknown scan is a no-op and still succeeds;
    the scan itself is kept.
    """
    executor.cancel_scan(scan_id)
    return CancelResponse()
