"""
External tool runner.

Spawns exactly one process per :class:`ToolSpec`, reads its stdout and
stderr line by line, and pushes every line onto a bounded
:class:`asyncio.Queue` as an :class:`OutputLine`.  When the queue is full the
readers block, which in turn stops draining the pipes and throttles the
child process.

The queue is closed by putting a single ``None`` sentinel on it.  That
happens exactly once per call, after both readers reached EOF (or were
abandoned after a kill), and before :meth:`ToolRunner.run` returns.

Cancellation (an :class:`asyncio.Event`) and the spec timeout both kill the
whole process group, so tools that fork helpers do not leave orphans behind.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ── Constants ────────────────────────────────────────────────────────────────

STDOUT: str = "stdout"
STDERR: str = "stderr"

_READ_LIMIT_BYTES: int = 1024 * 1024  # longest single line accepted
_DEFAULT_KILL_GRACE_SECONDS: float = 5.0
_POSIX: bool = os.name == "posix"


# ── Data types ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ToolSpec:
    """Immutable description of one external tool invocation.

    Attributes:
        name: Registered tool name (used for logging only).
        binary: Executable looked up on ``PATH``.
        args: Arguments passed verbatim; no shell is involved.
        timeout: Wall-clock limit in seconds, ``None`` for no limit.
    """

    name: str
    binary: str
    args: tuple[str, ...] = ()
    timeout: Optional[float] = None

    @property
    def argv(self) -> list[str]:
        return [self.binary, *self.args]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OutputLine:
    """One line of live output, or the terminal marker of a scan."""

    stream: str = STDOUT
    line: str = ""
    done: bool = False
    status: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def terminal(cls, status: Optional[str] = None) -> "OutputLine":
        return cls(stream="", done=True, status=status)

    def to_event(self) -> dict[str, Any]:
        """Serialise to the wire shape pushed to observers."""
        if self.done:
            event: dict[str, Any] = {
                "done": True,
                "timestamp": self.timestamp.isoformat(),
            }
            if self.status is not None:
                event["status"] = self.status
            return event
        return {
            "timestamp": self.timestamp.isoformat(),
            "stream": self.stream,
            "line": self.line,
        }


class ToolError(Exception):
    """Base class for everything that can go wrong while running a tool."""


class ToolSpawnError(ToolError):
    """The process could not be started (binary missing, not executable ...)."""


class ToolExitError(ToolError):
    """The process ran to completion with a non-zero exit status."""

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"exit status {exit_code}")
        self.exit_code = exit_code


class ToolCancelledError(ToolError):
    """The run was cancelled and the process was killed."""


class ToolTimeoutError(ToolCancelledError):
    """The spec timeout elapsed and the process was killed."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"timed out after {timeout:g}s")
        self.timeout = timeout


@dataclass
class ToolResult:
    """Summary of a finished run.

    Attributes:
        exit_code: Process exit status; ``-1`` when it never started and a
            negative signal number when it was killed.
        stdout: Every stdout line, each terminated by ``\\n``.
        stderr: Every stderr line, each terminated by ``\\n``.
        duration_seconds: Wall-clock time from spawn attempt to return.
        error: ``None`` on a clean zero exit, otherwise the failure.
        pid: OS process id, ``None`` when spawning failed.
    """

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0
    error: Optional[ToolError] = None
    pid: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ── Runner ───────────────────────────────────────────────────────────────────

class ToolRunner:
    """Runs external tools and streams their output line by line.

    The runner holds no per-run state, so one instance can serve any number
    of concurrent scans.
    """

    def __init__(
        self,
        *,
        read_limit: int = _READ_LIMIT_BYTES,
        kill_grace_seconds: float = _DEFAULT_KILL_GRACE_SECONDS,
    ) -> None:
        self._read_limit = read_limit
        self._kill_grace_seconds = kill_grace_seconds

    async def run(
        self,
        spec: ToolSpec,
        output: "asyncio.Queue[Optional[OutputLine]]",
        cancel: Optional[asyncio.Event] = None,
    ) -> ToolResult:
        """Execute *spec* and stream its output onto *output*.

        Args:
            spec: What to run.
            output: Bounded queue receiving :class:`OutputLine` items and a
                final ``None`` sentinel.
            cancel: Optional event; setting it kills the process.

        Returns:
            The :class:`ToolResult`.  Errors are reported through
            ``result.error`` rather than raised.
        """
        started = time.monotonic()
        log_extra = {"action": "tool_spawn", "target": spec.name}

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self._read_limit,
                start_new_session=_POSIX,
            )
        except (OSError, ValueError) as exc:
            logger.warning("Failed to start %s: %s", spec.binary, exc, extra=log_extra)
            await output.put(None)
            return ToolResult(
                exit_code=-1,
                duration_seconds=time.monotonic() - started,
                error=ToolSpawnError(f"start {spec.binary}: {exc}"),
            )

        logger.debug("Started %s (pid %d)", " ".join(spec.argv), process.pid, extra=log_extra)

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []
        readers = asyncio.gather(
            self._pump(process.stdout, STDOUT, stdout_lines, output),
            self._pump(process.stderr, STDERR, stderr_lines, output),
        )

        closed = False
        try:
            error = await self._supervise(process, readers, spec, cancel)
            if error is None:
                exit_code = await process.wait()
            else:
                # Killed: a helper that escaped the group may still hold the pipes.
                await self._drain(readers, spec)
                exit_code = process.returncode if process.returncode is not None else -1
            await output.put(None)
            closed = True
        finally:
            if not closed:
                # Our own task was cancelled: kill, stop reading, close.
                await self._terminate(process, spec)
                readers.cancel()
                _close_nowait(output)

        if error is None and exit_code != 0:
            error = ToolExitError(exit_code)

        return ToolResult(
            exit_code=exit_code,
            stdout="".join(f"{line}\n" for line in stdout_lines),
            stderr="".join(f"{line}\n" for line in stderr_lines),
            duration_seconds=time.monotonic() - started,
            error=error,
            pid=process.pid,
        )

    # ── Internals ────────────────────────────────────────────────────────

    async def _supervise(
        self,
        process: asyncio.subprocess.Process,
        readers: "asyncio.Future[Any]",
        spec: ToolSpec,
        cancel: Optional[asyncio.Event],
    ) -> Optional[ToolError]:
        """Wait for exit, cancellation, or timeout, whichever comes first.

        A tool counts as finished only once it exited *and* both pipes hit
        EOF, so a forked helper holding the pipes open is still subject to
        the timeout and to cancellation.
        """
        exited = asyncio.ensure_future(self._finished(process, readers))
        waiters: set[asyncio.Future[Any]] = {exited}
        cancelled: Optional[asyncio.Future[Any]] = None
        if cancel is not None:
            cancelled = asyncio.ensure_future(cancel.wait())
            waiters.add(cancelled)

        try:
            done, _ = await asyncio.wait(
                waiters,
                timeout=spec.timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for waiter in waiters:
                if not waiter.done():
                    waiter.cancel()

        if exited in done:
            exited.result()
            return None
        if cancelled is not None and cancelled in done:
            logger.info(
                "Cancelling %s (pid %d)", spec.binary, process.pid,
                extra={"action": "tool_cancel", "target": spec.name},
            )
            await self._terminate(process, spec)
            return ToolCancelledError("cancelled")

        logger.warning(
            "%s exceeded its %gs timeout (pid %d)", spec.binary, spec.timeout, process.pid,
            extra={"action": "tool_timeout", "target": spec.name},
        )
        await self._terminate(process, spec)
        return ToolTimeoutError(spec.timeout or 0.0)

    @staticmethod
    async def _finished(process: asyncio.subprocess.Process, readers: "asyncio.Future[Any]") -> int:
        await asyncio.shield(readers)
        return await process.wait()

    async def _terminate(self, process: asyncio.subprocess.Process, spec: ToolSpec) -> None:
        # The group outlives its leader, so it is killed even after the tool exited.
        try:
            if _POSIX:
                os.killpg(process.pid, signal.SIGKILL)
            elif process.returncode is None:
                process.kill()
        except ProcessLookupError:
            logger.debug(
                "Process group %d already gone", process.pid,
                extra={"action": "tool_kill", "target": spec.name},
            )
            if process.returncode is not None:
                return
        try:
            await asyncio.wait_for(process.wait(), timeout=self._kill_grace_seconds)
        except asyncio.TimeoutError:
            logger.error(
                "Process %d did not exit within %gs of SIGKILL",
                process.pid, self._kill_grace_seconds,
                extra={"action": "tool_kill", "target": spec.name},
            )

    async def _drain(self, readers: "asyncio.Future[Any]", spec: ToolSpec) -> None:
        """Give the readers the kill grace period to hit EOF, then stop them."""
        done, _ = await asyncio.wait({readers}, timeout=self._kill_grace_seconds)
        if done:
            return
        logger.warning(
            "Output pipes of %s still open %gs after the kill; abandoning them",
            spec.binary, self._kill_grace_seconds,
            extra={"action": "tool_kill", "target": spec.name},
        )
        readers.cancel()
        await asyncio.wait({readers})

    @staticmethod
    async def _pump(
        stream: Optional[asyncio.StreamReader],
        tag: str,
        buffer: list[str],
        output: "asyncio.Queue[Optional[OutputLine]]",
    ) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line longer than the read limit; the oversized chunk is dropped.
                logger.warning("Discarded an over-long %s line", tag)
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            buffer.append(line)
            await output.put(OutputLine(stream=tag, line=line))


def _close_nowait(output: "asyncio.Queue[Optional[OutputLine]]") -> None:
    try:
        output.put_nowait(None)
    except asyncio.QueueFull:
        logger.debug("Output queue full while closing a cancelled run")
