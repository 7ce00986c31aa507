"""
Tool catalogue endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter

from reconsuite.api.schemas.tool import ToolInfo, ToolStatusResponse
from reconsuite.tools import ExternalTool, ToolRegistry
from reconsuite.tools.detect import detect_all

router = APIRouter()


@router.get("", response_model=list[ToolInfo], summary="List registered tools")
async def list_tools() -> list[ToolInfo]:
    """Return every tool a scan can be started with, sorted by name."""
    return [
        ToolInfo(
            name=tool.name,
            label=tool.label,
            kind=tool.kind.value,
            category=tool.category.value,
            binary=tool.binary if isinstance(tool, ExternalTool) else None,
        )
        for tool in ToolRegistry.all()
    ]


@router.get(
    "/status",
    response_model=list[ToolStatusResponse],
    summary="Detect installed external tools",
)
async def tool_status() -> list[ToolStatusResponse]:
    """Look up each external tool's binary on ``PATH`` and read its version."""
    return [ToolStatusResponse.model_validate(status) for status in await detect_all()]
