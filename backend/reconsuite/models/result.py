"""
Result model.

One structured finding extracted from a finished scan, stored as a typed
key/value pair with optional JSON details.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from reconsuite.core.database import Base

if TYPE_CHECKING:
    from reconsuite.models.scan import Scan


class Result(Base):
    """A finding produced by a completed scan.

    Attributes:
        id: Integer primary key; insertion order matches source order.
        scan_id: Foreign key to the parent :class:`~reconsuite.models.scan.Scan`.
        result_type: Finding family (``whois``, ``dns``, ``port``, ``ssl`` ...).
        key: Finding key within its family.
        value: Finding value.
        details: Optional structured extras.
        created_at: Insertion timestamp (UTC).
    """

    __tablename__ = "results"
    __table_args__ = (
        Index("idx_results_scan", "scan_id"),
        Index("idx_results_type", "result_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scan_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("scans.id", ondelete="CASCADE"),
        nullable=False,
    )
    result_type: Mapped[str] = mapped_column(String(64), nullable=False)
    key: Mapped[str] = mapped_column(String(512), nullable=False)
    value: Mapped[str] = mapped_column(Text, default="", nullable=False)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # -- Relationships ---------------------------------------------------------
    scan: Mapped[Scan] = relationship("Scan", back_populates="results", lazy="noload")

    def __repr__(self) -> str:
        return f"<Result scan_id={self.scan_id} {self.result_type}:{self.key}>"
