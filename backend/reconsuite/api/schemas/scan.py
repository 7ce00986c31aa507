"""
Pydantic v2 schemas for scan-related API requests and responses.

Every response model uses ``ConfigDict(from_attributes=True)`` so that ORM
objects can be serialised directly via ``Model.model_validate(orm_instance)``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from reconsuite.models.scan import ScanStatus
from reconsuite.tools import ToolRegistry

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class ScanCreate(BaseModel):
    """Payload for ``POST /api/scans``.

    Attributes:
        target: Host, IP, CIDR range, or URL, depending on the tool.
        tool: Registered tool name (see ``GET /api/tools``).
        scan_type: Optional category label; defaults to the tool's category.
        project_id: Optional owning project.
        parameters: Tool-specific options.  Scalar values are stored as
            strings.
    """

    target: str = Field(
        ...,
        min_length=1,
        max_length=2048,
        examples=["example.com"],
        description="Host, network, or URL the tool runs against.",
    )
    tool: str = Field(..., min_length=1, max_length=64, examples=["dig"])
    scan_type: Optional[str] = Field(default=None, max_length=32)
    project_id: Optional[int] = None
    parameters: dict[str, str] = Field(
        default_factory=dict,
        examples=[{"record_type": "MX"}],
    )

    # -- validators --------------------------------------------------------

    @field_validator("target", mode="after")
    @classmethod
    def strip_target(cls, value: str) -> str:
        """Reject whitespace-only targets."""
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("target is required")
        return cleaned

    @field_validator("tool", mode="after")
    @classmethod
    def validate_tool(cls, value: str) -> str:
        """Ensure *tool* names a registered tool."""
        cleaned = value.strip()
        if cleaned not in ToolRegistry.names():
            raise ValueError(
                f"Unknown tool '{cleaned}'. Valid tools are: "
                f"{', '.join(ToolRegistry.names())}"
            )
        return cleaned

    @field_validator("parameters", mode="before")
    @classmethod
    def stringify_parameters(cls, value: Any) -> Any:
        """Accept numbers and booleans as parameter values."""
        if value is None:
            return {}
        if isinstance(value, dict):
            return {
                str(key): item if isinstance(item, str) else str(item)
                for key, item in value.items()
                if isinstance(item, (str, int, float, bool))
            }
        return value


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class ScanSummary(BaseModel):
    """Scan metadata without the captured output, used by list endpoints."""

    id: int
    project_id: Optional[int] = None
    scan_type: str
    tool: str
    target: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    status: ScanStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ScanResponse(ScanSummary):
    """Full scan returned by ``POST /api/scans`` and ``GET /api/scans/{id}``.

    Attributes:
        raw_output: Every line the scan emitted; empty until the scan ends.
    """

    raw_output: str = ""


class ResultResponse(BaseModel):
    """One structured finding of a completed scan."""

    id: int
    scan_id: int
    result_type: str
    key: str
    value: str
    details: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CancelResponse(BaseModel):
    """Returned by ``DELETE /api/scans/{id}``; cancelling is idempotent."""

    status: str = "cancelled"
