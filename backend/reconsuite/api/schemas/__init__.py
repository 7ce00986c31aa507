"""
Pydantic v2 schemas for the ReconSuite REST API.

Re-exports every public schema so consumers can do::

    from reconsuite.api.schemas import ScanCreate, ScanResponse  # etc.
"""

from reconsuite.api.schemas.project import (
    ProjectCreate,
    ProjectResponse,
    ProjectUpdate,
    StatsResponse,
)
from reconsuite.api.schemas.scan import (
    CancelResponse,
    ResultResponse,
    ScanCreate,
    ScanResponse,
    ScanSummary,
)
from reconsuite.api.schemas.tool import ToolInfo, ToolStatusResponse

__all__: list[str] = [
    "CancelResponse",
    "ProjectCreate",
    "ProjectResponse",
    "ProjectUpdate",
    "ResultResponse",
    "ScanCreate",
    "ScanResponse",
    "ScanSummary",
    "StatsResponse",
    "ToolInfo",
    "ToolStatusResponse",
]
