"""
Pydantic v2 schemas for projects and dashboard statistics.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProjectCreate(BaseModel):
    """Payload for ``POST /api/projects``."""

    name: str = Field(..., min_length=1, max_length=255, examples=["Acme external"])
    description: str = ""
    scope: str = Field(
        default="",
        description="Free-text scope statement (hosts, ranges, rules of engagement).",
    )

    @field_validator("name", mode="after")
    @classmethod
    def strip_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned


class ProjectUpdate(BaseModel):
    """Payload for ``PUT /api/projects/{id}``; omitted fields are unchanged."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    scope: Optional[str] = None


class ProjectResponse(BaseModel):
    id: int
    name: str
    description: str = ""
    scope: str = ""
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatsResponse(BaseModel):
    """Row counts shown on the dashboard."""

    project_count: int = 0
    scan_count: int = 0
    result_count: int = 0
