"""
Scan persistence used by the executor.

:class:`ScanRepository` wraps an ``async_sessionmaker`` and opens a fresh
session per call, so any number of scan tasks can use one repository
concurrently.  SQLite allows a single writer at a time; with
``serialize_writes=True`` write calls queue on an :class:`asyncio.Lock`
instead of failing with "database is locked".
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reconsuite.engine.parsers import Finding
from reconsuite.models.result import Result
from reconsuite.models.scan import ALLOWED_TRANSITIONS, Scan, ScanStatus

logger = logging.getLogger(__name__)


class ScanRepository:
    """Data access for scans and their results.

    Args:
        session_factory: Produces the sessions used by every call.
        serialize_writes: Queue writes behind a single lock (SQLite).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        serialize_writes: bool = False,
    ) -> None:
        self._session_factory = session_factory
        self._write_lock: Optional[asyncio.Lock] = asyncio.Lock() if serialize_writes else None

    @contextlib.asynccontextmanager
    async def _writing(self) -> AsyncIterator[AsyncSession]:
        lock = self._write_lock or contextlib.nullcontext()
        async with lock:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session

    # ── Scans ────────────────────────────────────────────────────────────

    async def create_scan(self, scan: Scan) -> Scan:
        """Insert *scan* and return it with its id populated."""
        async with self._writing() as session:
            session.add(scan)
            await session.flush()
            await session.refresh(scan)
        return scan

    async def get_scan(self, scan_id: int) -> Optional[Scan]:
        async with self._session_factory() as session:
            return await session.get(Scan, scan_id)

    async def update_status(self, scan_id: int, status: ScanStatus) -> bool:
        """Move a scan to *status* if the transition is allowed.

        ``running`` stamps ``started_at``; terminal states stamp
        ``completed_at``.  The UPDATE is conditional on the current status,
        so a regression or a second terminal transition touches no row.

        Returns:
            ``True`` if the scan was updated.
        """
        values: dict[str, object] = {"status": status}
        now = datetime.now(timezone.utc)
        if status is ScanStatus.RUNNING:
            values["started_at"] = now
        elif status.is_terminal:
            values["completed_at"] = now

        stmt = (
            update(Scan)
            .where(Scan.id == scan_id, Scan.status.in_(ALLOWED_TRANSITIONS.get(status, ())))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._writing() as session:
            result = await session.execute(stmt)

        changed = bool(result.rowcount)
        if changed:
            logger.info(
                "Scan status -> %s", status.value,
                extra={"action": "scan_status", "target": f"scan:{scan_id}"},
            )
        else:
            logger.warning(
                "Rejected status transition to %s", status.value,
                extra={"action": "scan_status", "target": f"scan:{scan_id}"},
            )
        return changed

    async def update_raw_output(self, scan_id: int, raw_output: str) -> None:
        stmt = (
            update(Scan)
            .where(Scan.id == scan_id)
            .values(raw_output=raw_output)
            .execution_options(synchronize_session=False)
        )
        async with self._writing() as session:
            await session.execute(stmt)

    # ── Results ──────────────────────────────────────────────────────────

    async def create_results(self, scan_id: int, findings: Sequence[Finding]) -> int:
        """Insert all *findings* for a scan in one transaction.

        Either every row is committed or, on error, none is.

        Returns:
            Number of rows inserted.
        """
        if not findings:
            return 0
        async with self._writing() as session:
            session.add_all(
                [
                    Result(
                        scan_id=scan_id,
                        result_type=finding.result_type,
                        key=finding.key,
                        value=finding.value,
                        details=finding.details,
                    )
                    for finding in findings
                ]
            )
        return len(findings)

    async def list_results(self, scan_id: int) -> list[Result]:
        async with self._session_factory() as session:
            rows = await session.execute(
                select(Result).where(Result.scan_id == scan_id).order_by(Result.id)
            )
            return list(rows.scalars().all())
