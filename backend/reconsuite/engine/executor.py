"""
Scan executor.

Owns the scan lifecycle ``pending -> running -> completed | failed``.  Every
accepted scan runs in its own :class:`asyncio.Task`; the task resolves the
tool once, then either awaits a built-in probe or drives the
:class:`~reconsuite.engine.runner.ToolRunner` and relays each output line to
the :class:`~reconsuite.engine.broadcast.BroadcastHub` as it arrives.

Whatever happens inside the task, its last act is to publish exactly one
terminal ``done`` event, and only after raw output, results, and status
have been persisted.  An observer that reacts to ``done`` by reading the
scan therefore always sees the final state.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence, cast

from sqlalchemy.exc import SQLAlchemyError

from reconsuite.engine.broadcast import BroadcastHub, Observer
from reconsuite.engine.parsers import Finding, parse_output
from reconsuite.engine.runner import (
    STDERR,
    STDOUT,
    OutputLine,
    ToolCancelledError,
    ToolRunner,
    ToolTimeoutError,
)
from reconsuite.engine.store import ScanRepository
from reconsuite.models.scan import Scan, ScanStatus
from reconsuite.tools.base import BaseTool, BuiltinTool, ExternalTool, ProbeError, ToolSpecError
from reconsuite.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

CANCELLED_LINE: str = "Scan cancelled"
_DEFAULT_OUTPUT_BUFFER: int = 100
_UNKNOWN_SCAN_TYPE: str = "unknown"

ObserverFactory = Callable[[int], Observer]


class ScanValidationError(ValueError):
    """Raised by :meth:`ScanExecutor.start_scan` for an unusable request."""


@dataclass(frozen=True)
class ScanJob:
    """Snapshot of the fields a scan task needs; no ORM state is shared."""

    scan_id: int
    tool: str
    target: str
    parameters: dict[str, str]


def timeout_line(timeout: float) -> str:
    return f"Scan timed out after {timeout:g}s"


class _ScanOutput:
    """Raw-output buffer of one scan plus its live publisher."""

    def __init__(self, hub: BroadcastHub, scan_id: int) -> None:
        self._hub = hub
        self._scan_id = scan_id
        self._lines: list[str] = []
        self.persisted = False

    @property
    def text(self) -> str:
        return "".join(self._lines)

    def record(self, line: str) -> None:
        self._lines.append(f"{line}\n")

    async def publish(self, line: OutputLine) -> None:
        await self._hub.publish(self._scan_id, line.to_event())

    async def emit(self, stream: str, line: str) -> None:
        self.record(line)
        await self.publish(OutputLine(stream=stream, line=line))


async def _run_cancellable(
    probe: Awaitable[list[Finding]],
    cancel: asyncio.Event,
    timeout: Optional[float],
) -> list[Finding]:
    """Await *probe* unless *cancel* fires or *timeout* elapses first.

    Raises:
        ToolCancelledError: *cancel* was set.
        ToolTimeoutError: *timeout* elapsed.
    """
    probe_task = asyncio.ensure_future(probe)
    cancelled = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {probe_task, cancelled},
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        cancelled.cancel()
        if not probe_task.done():
            probe_task.cancel()
            await asyncio.gather(probe_task, return_exceptions=True)

    if probe_task in done:
        return probe_task.result()
    if cancelled in done:
        raise ToolCancelledError("cancelled")
    raise ToolTimeoutError(timeout or 0.0)


# ── Executor ─────────────────────────────────────────────────────────────────

class ScanExecutor:
    """Schedules scans and drives each one to exactly one terminal state.

    Args:
        repository: Persistence for scans and results.
        hub: Receives every output line and the terminal event.
        runner: Runs external tools; a default :class:`ToolRunner` if omitted.
        max_concurrent: Upper bound on scans executing at once, ``0`` for
            no bound.  Scans over the bound stay ``pending`` until admitted.
        output_buffer: Capacity of the per-scan line queue between the
            runner and this executor.
        observer_factory: Optional callable returning an extra observer per
            scan id (for example a Redis mirror); it is subscribed for the
            lifetime of the scan task.
    """

    def __init__(
        self,
        repository: ScanRepository,
        hub: BroadcastHub,
        runner: Optional[ToolRunner] = None,
        *,
        max_concurrent: int = 0,
        output_buffer: int = _DEFAULT_OUTPUT_BUFFER,
        observer_factory: Optional[ObserverFactory] = None,
    ) -> None:
        self._repository = repository
        self._hub = hub
        self._runner = runner or ToolRunner()
        self._output_buffer = max(1, output_buffer)
        self._observer_factory = observer_factory
        self._slots: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(max_concurrent) if max_concurrent > 0 else None
        )

        self._cancels: dict[int, asyncio.Event] = {}
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task[None]] = set()
        self._closing = False

    # ── Public API ───────────────────────────────────────────────────────

    async def start_scan(self, scan: Scan) -> Scan:
        """Persist *scan* as ``pending`` and schedule its task.

        Returns as soon as the task is scheduled; the scan runs in the
        background.

        Args:
            scan: A transient :class:`Scan` with at least ``tool`` and
                ``target`` set.

        Returns:
            The persisted scan, with its id.

        Raises:
            ScanValidationError: If ``tool`` or ``target`` is empty, or the
                executor is shutting down.
            sqlalchemy.exc.SQLAlchemyError: If the scan cannot be stored.
        """
        target = (scan.target or "").strip()
        tool_name = (scan.tool or "").strip()
        if not target:
            raise ScanValidationError("target is required")
        if not tool_name:
            raise ScanValidationError("tool is required")
        if self._closing:
            raise ScanValidationError("executor is shutting down")

        scan.target = target
        scan.tool = tool_name
        scan.parameters = {str(k): str(v) for k, v in (scan.parameters or {}).items()}
        if not scan.scan_type:
            tool = ToolRegistry.get(tool_name)
            scan.scan_type = tool.category.value if tool is not None else _UNKNOWN_SCAN_TYPE
        scan.status = ScanStatus.PENDING
        scan.raw_output = ""

        scan = await self._repository.create_scan(scan)
        job = ScanJob(
            scan_id=scan.id,
            tool=scan.tool,
            target=scan.target,
            parameters=dict(scan.parameters),
        )

        cancel = asyncio.Event()
        with self._lock:
            self._cancels[job.scan_id] = cancel
        if self._closing:
            # shutdown() started while the scan was being stored; fail it unrun.
            cancel.set()

        mirror: Optional[Observer] = None
        if self._observer_factory is not None:
            mirror = self._observer_factory(job.scan_id)
            self._hub.subscribe(job.scan_id, mirror)

        task = asyncio.create_task(self._run(job, cancel, mirror), name=f"scan-{job.scan_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(
            "Scan accepted: %s %s", job.tool, job.target,
            extra={"action": "scan_start", "target": f"scan:{job.scan_id}"},
        )
        return scan

    def cancel_scan(self, scan_id: int) -> bool:
        """Signal cancellation of a running or queued scan.

        Unknown and already finished scans are ignored.

        Returns:
            ``True`` if a live scan was signalled.
        """
        with self._lock:
            cancel = self._cancels.get(scan_id)
        if cancel is None:
            return False
        cancel.set()
        logger.info(
            "Cancellation requested",
            extra={"action": "scan_cancel", "target": f"scan:{scan_id}"},
        )
        return True

    def active_scan_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._cancels)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Cancel every in-flight scan and wait for the tasks to finish.

        Scans get *timeout* seconds to kill their processes and persist a
        ``failed`` state; tasks still alive after that are cancelled.
        """
        self._closing = True
        with self._lock:
            handles = list(self._cancels.values())
        for cancel in handles:
            cancel.set()

        tasks = list(self._tasks)
        if not tasks:
            return
        logger.info(
            "Stopping %d scan task(s)", len(tasks),
            extra={"action": "executor_shutdown", "target": "-"},
        )
        _done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Task body ────────────────────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def _admission(self) -> AsyncIterator[None]:
        if self._slots is None:
            yield
            return
        async with self._slots:
            yield

    async def _run(
        self,
        job: ScanJob,
        cancel: asyncio.Event,
        mirror: Optional[Observer],
    ) -> None:
        output = _ScanOutput(self._hub, job.scan_id)
        status = ScanStatus.FAILED
        try:
            async with self._admission():
                if cancel.is_set():
                    status = await self._conclude(job, output, ScanStatus.FAILED, CANCELLED_LINE)
                else:
                    status = await self._execute(job, cancel, output)
        except asyncio.CancelledError:
            status = await self._abort(job, output, CANCELLED_LINE)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "Scan task crashed",
                extra={"action": "scan_error", "target": f"scan:{job.scan_id}"},
            )
            status = await self._abort(job, output, f"Error: {exc}")
        finally:
            await output.publish(OutputLine.terminal(status.value))
            with self._lock:
                self._cancels.pop(job.scan_id, None)
            if mirror is not None:
                self._hub.unsubscribe(job.scan_id, mirror)
            logger.info(
                "Scan finished: %s", status.value,
                extra={"action": "scan_done", "target": f"scan:{job.scan_id}"},
            )

    async def _execute(self, job: ScanJob, cancel: asyncio.Event, output: _ScanOutput) -> ScanStatus:
        tool = ToolRegistry.get(job.tool)
        if ToolRegistry.is_builtin(job.tool):
            return await self._run_builtin(job, cast(BuiltinTool, tool), cancel, output)
        return await self._run_external(job, tool, cancel, output)

    async def _run_builtin(
        self,
        job: ScanJob,
        tool: BuiltinTool,
        cancel: asyncio.Event,
        output: _ScanOutput,
    ) -> ScanStatus:
        await self._repository.update_status(job.scan_id, ScanStatus.RUNNING)
        if tool.announce:
            await output.emit(STDOUT, tool.announce.format(target=job.target))

        try:
            findings = await _run_cancellable(
                tool.probe(job.target, job.parameters), cancel, tool.timeout
            )
        except ToolTimeoutError as exc:
            return await self._conclude(job, output, ScanStatus.FAILED, timeout_line(exc.timeout))
        except ToolCancelledError:
            return await self._conclude(job, output, ScanStatus.FAILED, CANCELLED_LINE)
        except ProbeError as exc:
            logger.info(
                "%s failed: %s", tool.name, exc,
                extra={"action": "probe_failed", "target": f"scan:{job.scan_id}"},
            )
            return await self._conclude(job, output, ScanStatus.FAILED, f"Error: {exc}")
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "%s raised unexpectedly", tool.name,
                extra={"action": "probe_failed", "target": f"scan:{job.scan_id}"},
            )
            return await self._conclude(job, output, ScanStatus.FAILED, f"Error: {exc}")

        for finding in findings:
            await output.emit(STDOUT, f"{finding.key}: {finding.value}")
        return await self._conclude(job, output, ScanStatus.COMPLETED, findings=findings)

    async def _run_external(
        self,
        job: ScanJob,
        tool: Optional[BaseTool],
        cancel: asyncio.Event,
        output: _ScanOutput,
    ) -> ScanStatus:
        try:
            if not isinstance(tool, ExternalTool):
                raise ToolSpecError(f"unknown tool: {job.tool}")
            spec = tool.build_spec(job.target, job.parameters)
        except ToolSpecError as exc:
            logger.info(
                "Cannot build %s invocation: %s", job.tool, exc,
                extra={"action": "spec_failed", "target": f"scan:{job.scan_id}"},
            )
            return await self._conclude(job, output, ScanStatus.FAILED, f"Error: {exc}")

        await self._repository.update_status(job.scan_id, ScanStatus.RUNNING)

        queue: asyncio.Queue[Optional[OutputLine]] = asyncio.Queue(maxsize=self._output_buffer)
        runner_task = asyncio.create_task(self._runner.run(spec, queue, cancel))
        try:
            while True:
                line = await queue.get()
                if line is None:
                    break
                output.record(line.line)
                await output.publish(line)
            result = await runner_task
        finally:
            if not runner_task.done():
                runner_task.cancel()
                await asyncio.gather(runner_task, return_exceptions=True)

        error = result.error
        if isinstance(error, ToolTimeoutError):
            return await self._conclude(job, output, ScanStatus.FAILED, timeout_line(error.timeout))
        if isinstance(error, ToolCancelledError):
            return await self._conclude(job, output, ScanStatus.FAILED, CANCELLED_LINE)
        if error is not None:
            logger.info(
                "%s failed: %s", spec.binary, error,
                extra={"action": "tool_failed", "target": f"scan:{job.scan_id}"},
            )
            return await self._conclude(job, output, ScanStatus.FAILED, f"Error: {error}")

        findings = parse_output(tool.parser_key, result.stdout)
        return await self._conclude(job, output, ScanStatus.COMPLETED, findings=findings)

    # ── Persistence ──────────────────────────────────────────────────────

    async def _conclude(
        self,
        job: ScanJob,
        output: _ScanOutput,
        status: ScanStatus,
        message: Optional[str] = None,
        findings: Sequence[Finding] = (),
    ) -> ScanStatus:
        """Persist raw output, results, and *status*, then publish *message*.

        *message* is a synthetic stderr line; it is appended to the raw
        output before the single raw-output write.
        """
        if message:
            output.record(message)
        await self._repository.update_raw_output(job.scan_id, output.text)
        output.persisted = True

        if findings:
            try:
                await self._repository.create_results(job.scan_id, findings)
            except SQLAlchemyError:
                logger.exception(
                    "Storing %d result(s) failed", len(findings),
                    extra={"action": "store_results", "target": f"scan:{job.scan_id}"},
                )

        await self._repository.update_status(job.scan_id, status)
        if message:
            await output.publish(OutputLine(stream=STDERR, line=message))
        return status

    async def _abort(self, job: ScanJob, output: _ScanOutput, message: str) -> ScanStatus:
        """Best-effort ``failed`` transition after the task body raised.

        Returns the status that is actually stored, which stays
        ``completed`` if the scan had already finished.
        """
        try:
            if not output.persisted:
                return await self._conclude(job, output, ScanStatus.FAILED, message)
            scan = await self._repository.get_scan(job.scan_id)
            if scan is not None and scan.status is ScanStatus.COMPLETED:
                return ScanStatus.COMPLETED
            await self._repository.update_status(job.scan_id, ScanStatus.FAILED)
        except Exception:  # noqa: BLE001
            logger.exception(
                "Could not record the failure",
                extra={"action": "scan_error", "target": f"scan:{job.scan_id}"},
            )
        return ScanStatus.FAILED
