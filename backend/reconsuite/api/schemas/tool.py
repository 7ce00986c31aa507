"""
Pydantic v2 schemas for the tool catalogue endpoints.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ToolInfo(BaseModel):
    """A registered tool as listed by ``GET /api/tools``.

    Attributes:
        name: Identifier used in ``ScanCreate.tool``.
        label: Human-readable name.
        kind: ``builtin`` or ``external``.
        category: ``passive``, ``active`` or ``web``.
        binary: Executable name, ``None`` for built-ins.
    """

    name: str
    label: str
    kind: str
    category: str
    binary: Optional[str] = None


class ToolStatusResponse(BaseModel):
    """Installation state of one external tool."""

    name: str
    label: str = ""
    binary: str
    installed: bool
    path: Optional[str] = None
    version: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
