"""
Dashboard statistics endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reconsuite.api.deps import get_db_session
from reconsuite.api.schemas.project import StatsResponse
from reconsuite.models.project import Project
from reconsuite.models.result import Result
from reconsuite.models.scan import Scan

router = APIRouter()


@router.get("", response_model=StatsResponse, summary="Project, scan and result counts")
async def get_stats(db: AsyncSession = Depends(get_db_session)) -> StatsResponse:
    async def _count(model: type) -> int:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()

    return StatsResponse(
        project_count=await _count(Project),
        scan_count=await _count(Scan),
        result_count=await _count(Result),
    )
