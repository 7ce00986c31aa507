"""
Project model.

A project groups scans run for one engagement and records the agreed scope
as free text.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reconsuite.core.database import Base

if TYPE_CHECKING:
    from reconsuite.models.scan import Scan


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Project(Base):
    """An engagement that owns a set of scans.

    Attributes:
        id: Integer primary key.
        name: Display name, required.
        description: Optional longer description.
        scope: Free-text scope statement (hosts, ranges, rules of engagement).
        created_at: Creation timestamp (UTC).
        updated_at: Timestamp of the last update (UTC).
        scans: Scans run under this project.
    """

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(
        Text, default="", server_default="", nullable=False
    )
    scope: Mapped[str] = mapped_column(
        Text, default="", server_default="", nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    # -- Relationships ---------------------------------------------------------
    scans: Mapped[list[Scan]] = relationship(
        "Scan",
        back_populates="project",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r}>"
