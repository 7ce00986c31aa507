"""
Scan model and lifecycle status.

A scan is one invocation of a tool against a target.  Its ``status`` only
ever moves forward along ``pending -> running -> completed|failed``; the
allowed moves are listed in :data:`ALLOWED_TRANSITIONS` and enforced by the
scan repository with a conditional UPDATE.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reconsuite.core.database import Base

if TYPE_CHECKING:
    from reconsuite.models.project import Project
    from reconsuite.models.result import Result


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanStatus(str, enum.Enum):
    """Lifecycle states of a scan."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanStatus.COMPLETED, ScanStatus.FAILED)


# Source states from which each target state may be entered.  ``pending ->
# failed`` covers tool-spec build errors and scans cancelled before admission.
ALLOWED_TRANSITIONS: dict[ScanStatus, tuple[ScanStatus, ...]] = {
    ScanStatus.RUNNING: (ScanStatus.PENDING,),
    ScanStatus.COMPLETED: (ScanStatus.RUNNING,),
    ScanStatus.FAILED: (ScanStatus.PENDING, ScanStatus.RUNNING),
}


class Scan(Base):
    """A single tool invocation tracked through its lifecycle.

    Attributes:
        id: Integer primary key assigned on insert.
        project_id: Optional owning :class:`~reconsuite.models.project.Project`.
        scan_type: Category label (``passive``, ``active``, ``web``).
        tool: Registered tool name; selects routing and parser.
        target: Host, network, or URL the tool runs against.
        parameters: Tool-specific string options, ``{}`` when none.
        status: Current :class:`ScanStatus`.
        raw_output: Every emitted output line, written once at termination.
        started_at: Set on the transition to ``running``.
        completed_at: Set on the transition to a terminal status.
        created_at: Row creation timestamp (UTC).
    """

    __tablename__ = "scans"
    __table_args__ = (
        Index("idx_scans_project", "project_id"),
        Index("idx_scans_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
    )
    scan_type: Mapped[str] = mapped_column(String(32), nullable=False)
    tool: Mapped[str] = mapped_column(String(64), nullable=False)
    target: Mapped[str] = mapped_column(String(2048), nullable=False)
    parameters: Mapped[dict[str, Any]] = mapped_column(
        JSON, default=dict, nullable=False
    )
    status: Mapped[ScanStatus] = mapped_column(
        Enum(
            ScanStatus,
            name="scan_status",
            native_enum=False,
            length=16,
            values_callable=lambda members: [m.value for m in members],
        ),
        default=ScanStatus.PENDING,
        nullable=False,
    )
    raw_output: Mapped[str] = mapped_column(
        Text, default="", server_default="", nullable=False
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    # -- Relationships ---------------------------------------------------------
    project: Mapped[Optional[Project]] = relationship(
        "Project",
        back_populates="scans",
        lazy="noload",
    )
    results: Mapped[list[Result]] = relationship(
        "Result",
        back_populates="scan",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
        order_by="Result.id",
    )

    def __repr__(self) -> str:
        return f"<Scan id={self.id} tool={self.tool} target={self.target} status={self.status}>"
