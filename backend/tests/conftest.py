"""
Shared pytest fixtures for the ReconSuite test suite.

Provides a throw-away SQLite database per test (a temporary file, so that
the executor's background tasks and the test body can use separate
connections), the scan repository, broadcast hub and executor, a FastAPI
test application wired to all of them, and short-lived external tools that
run the current Python interpreter.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, AsyncGenerator, Mapping, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from reconsuite.core.database import build_engine, build_session_factory, create_schema
from reconsuite.engine.broadcast import BroadcastHub
from reconsuite.engine.executor import ScanExecutor
from reconsuite.engine.runner import ToolRunner
from reconsuite.engine.store import ScanRepository
from reconsuite.models.scan import Scan, ScanStatus
from reconsuite.tools.base import ExternalTool, ToolCategory
from reconsuite.tools.registry import ToolRegistry


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a SQLite engine on a temporary file and provision all tables."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'reconsuite-test.db'}", poolclass=NullPool)
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


@pytest_asyncio.fixture()
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the test database."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture()
async def repository(session_factory: async_sessionmaker[AsyncSession]) -> ScanRepository:
    return ScanRepository(session_factory, serialize_writes=True)


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------

class RecordingObserver:
    """Hub observer that keeps every event it receives."""

    def __init__(self) -> None:
        self.events: list[dict[str, Any]] = []
        self.closed = False
        self._done = asyncio.Event()

    async def send(self, event: dict[str, Any]) -> None:
        self.events.append(event)
        if event.get("done"):
            self._done.set()

    async def close(self) -> None:
        self.closed = True

    @property
    def lines(self) -> list[str]:
        return [event["line"] for event in self.events if not event.get("done")]

    def lines_on(self, stream: str) -> list[str]:
        return [e["line"] for e in self.events if not e.get("done") and e["stream"] == stream]

    @property
    def done_events(self) -> list[dict[str, Any]]:
        return [event for event in self.events if event.get("done")]

    async def wait_done(self, timeout: float = 15.0) -> dict[str, Any]:
        await asyncio.wait_for(self._done.wait(), timeout=timeout)
        return self.done_events[0]

    async def wait_for_line(self, text: str, timeout: float = 10.0) -> None:
        async def _poll() -> None:
            while text not in self.lines:
                await asyncio.sleep(0.01)

        await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture()
def hub() -> BroadcastHub:
    return BroadcastHub(send_timeout=2.0)


@pytest.fixture()
def recorder() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture()
def recorder_factory() -> Any:
    """Return the observer class itself, for tests needing several recorders."""
    return RecordingObserver


@pytest_asyncio.fixture()
async def executor(
    repository: ScanRepository,
    hub: BroadcastHub,
) -> AsyncGenerator[ScanExecutor, None]:
    """A :class:`ScanExecutor` that is shut down after the test."""
    scan_executor = ScanExecutor(repository, hub, ToolRunner(kill_grace_seconds=2.0))
    yield scan_executor
    await scan_executor.shutdown(timeout=5.0)


# ---------------------------------------------------------------------------
# Python-interpreter tools
# ---------------------------------------------------------------------------

class PythonTool(ExternalTool):
    """Runs ``python -c <parameters['code']>``; stdout has no parser."""

    name = "_test_python"
    label = "Python (test)"
    category = ToolCategory.ACTIVE
    binary = sys.executable
    timeout = 20.0

    def build_args(self, target: str, parameters: Mapping[str, object]) -> list[str]:
        return ["-c", self.param(parameters, "code", "pass")]


class SlowPythonTool(PythonTool):
    """Same as :class:`PythonTool` but killed after one second."""

    name = "_test_python_slow"
    timeout = 1.0


class NmapShapedPythonTool(PythonTool):
    """Python tool whose stdout is handed to the nmap XML parser."""

    name = "_test_python_nmap"
    parser = "nmap"


class MissingBinaryTool(PythonTool):
    name = "_test_missing_binary"
    binary = "/nonexistent/reconsuite-test-binary"


_PYTHON_TOOLS = (PythonTool, SlowPythonTool, NmapShapedPythonTool, MissingBinaryTool)


@pytest.fixture()
def python_tools() -> Any:
    """Register the interpreter-backed tools for the duration of a test."""
    for tool_class in _PYTHON_TOOLS:
        ToolRegistry.register(tool_class)
    yield
    for tool_class in _PYTHON_TOOLS:
        ToolRegistry.unregister(tool_class.name)


def _make_scan(tool: str, target: str = "localhost", code: Optional[str] = None, **parameters: str) -> Scan:
    if code is not None:
        parameters["code"] = code
    return Scan(tool=tool, target=target, parameters=parameters)


@pytest.fixture()
def make_scan() -> Any:
    """Factory for transient :class:`Scan` objects passed to ``start_scan``."""
    return _make_scan


@pytest.fixture()
def wait_for_status(repository: ScanRepository) -> Any:
    """Return a coroutine function polling until a scan reaches a status."""

    async def _wait(scan_id: int, wanted: ScanStatus, timeout: float = 10.0) -> Scan:
        async def _poll() -> Scan:
            while True:
                scan = await repository.get_scan(scan_id)
                if scan is not None and scan.status is wanted:
                    return scan
                await asyncio.sleep(0.02)

        return await asyncio.wait_for(_poll(), timeout=timeout)

    return _wait


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture()
async def test_app(
    session_factory: async_sessionmaker[AsyncSession],
    repository: ScanRepository,
    hub: BroadcastHub,
    executor: ScanExecutor,
):
    """Return a FastAPI application wired to the test database and engine.

    The lifespan handler is not run; the state it would create is set
    directly and ``get_db_session`` is overridden to use the test database.
    """
    from fastapi import FastAPI

    from reconsuite.api.deps import get_db_session
    from reconsuite.api.v1.router import router as api_router
    from reconsuite.api.v1.websocket import router as ws_router

    async def _override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        """Provide a test database session for dependency injection."""
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = FastAPI()
    app.include_router(api_router, prefix="/api")
    app.include_router(ws_router)
    app.dependency_overrides[get_db_session] = _override_get_db_session
    app.state.hub = hub
    app.state.repository = repository
    app.state.executor = executor

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx.AsyncClient wired to the test FastAPI app."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
