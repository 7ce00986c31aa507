"""
Tests for the live scan output WebSocket.

The streaming function is exercised with an in-memory WebSocket double; the
routes themselves are checked end-to-end with Starlette's TestClient.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect, WebSocketState

from reconsuite.api.v1.websocket import (
    CLOSE_BAD_REQUEST,
    CLOSE_NOT_FOUND,
    WebSocketObserver,
    stream_scan_output,
)
from reconsuite.engine.broadcast import BroadcastHub
from reconsuite.engine.runner import OutputLine
from reconsuite.engine.store import ScanRepository
from reconsuite.models.scan import Scan, ScanStatus


class _FakeWebSocket:
    """Just enough of :class:`fastapi.WebSocket` for the streaming code."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.close_code: Optional[int] = None
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED
        self.incoming: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    async def send_json(self, data: dict[str, Any]) -> None:
        self.sent.append(data)

    async def receive(self) -> dict[str, Any]:
        return await self.incoming.get()

    async def close(self, code: int = 1000) -> None:
        self.close_code = code
        self.application_state = WebSocketState.DISCONNECTED


async def _new_scan(repository: ScanRepository, *statuses: ScanStatus) -> Scan:
    scan = await repository.create_scan(
        Scan(scan_type="passive", tool="whois", target="example.com", parameters={})
    )
    for status in statuses:
        await repository.update_status(scan.id, status)
    return scan


async def _wait_subscribed(hub: BroadcastHub, topic: int) -> None:
    async def _poll() -> None:
        while hub.subscriber_count(topic) == 0:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=5.0)


# ---------------------------------------------------------------------------
# WebSocketObserver
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_observer_stops_after_done() -> None:
    websocket = _FakeWebSocket()
    observer = WebSocketObserver(websocket)  # type: ignore[arg-type]

    await observer.send(OutputLine(stream="stdout", line="one").to_event())
    await observer.send(OutputLine.terminal("completed").to_event())
    await observer.send(OutputLine.terminal("completed").to_event())
    await observer.send(OutputLine(stream="stdout", line="late").to_event())

    assert [e.get("line") for e in websocket.sent] == ["one", None]
    assert observer.finished.is_set()


@pytest.mark.asyncio
async def test_observer_close_ends_stream() -> None:
    observer = WebSocketObserver(_FakeWebSocket())  # type: ignore[arg-type]

    await observer.close()

    assert observer.finished.is_set()


# ---------------------------------------------------------------------------
# stream_scan_output
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_unknown_scan_closes_with_4404(hub: BroadcastHub, repository: ScanRepository) -> None:
    websocket = _FakeWebSocket()

    await stream_scan_output(websocket, 999, hub, repository)  # type: ignore[arg-type]

    assert websocket.close_code == CLOSE_NOT_FOUND
    assert websocket.sent == []
    assert hub.subscriber_count(999) == 0


@pytest.mark.asyncio
async def test_terminal_scan_gets_synthesized_done(
    hub: BroadcastHub, repository: ScanRepository,
) -> None:
    scan = await _new_scan(repository, ScanStatus.RUNNING, ScanStatus.COMPLETED)
    websocket = _FakeWebSocket()

    await stream_scan_output(websocket, scan.id, hub, repository)  # type: ignore[arg-type]

    assert len(websocket.sent) == 1
    assert websocket.sent[0]["done"] is True
    assert websocket.sent[0]["status"] == "completed"
    assert websocket.close_code is None
    assert hub.subscriber_count(scan.id) == 0


@pytest.mark.asyncio
async def test_live_scan_relays_until_done(hub: BroadcastHub, repository: ScanRepository) -> None:
    scan = await _new_scan(repository, ScanStatus.RUNNING)
    websocket = _FakeWebSocket()
    streaming = asyncio.create_task(
        stream_scan_output(websocket, scan.id, hub, repository)  # type: ignore[arg-type]
    )
    await _wait_subscribed(hub, scan.id)

    await hub.publish(scan.id, OutputLine(stream="stdout", line="first").to_event())
    await hub.publish(scan.id, OutputLine(stream="stderr", line="second").to_event())
    await hub.publish(scan.id, OutputLine.terminal("failed").to_event())
    await asyncio.wait_for(streaming, timeout=5.0)

    assert [(e.get("stream"), e.get("line")) for e in websocket.sent[:2]] == [
        ("stdout", "first"),
        ("stderr", "second"),
    ]
    assert websocket.sent[2]["done"] is True
    assert websocket.sent[2]["status"] == "failed"
    assert len(websocket.sent) == 3
    assert hub.subscriber_count(scan.id) == 0


@pytest.mark.asyncio
async def test_client_disconnect_unsubscribes(hub: BroadcastHub, repository: ScanRepository) -> None:
    scan = await _new_scan(repository)
    websocket = _FakeWebSocket()
    streaming = asyncio.create_task(
        stream_scan_output(websocket, scan.id, hub, repository)  # type: ignore[arg-type]
    )
    await _wait_subscribed(hub, scan.id)

    await websocket.incoming.put({"type": "websocket.receive", "text": "ignored"})
    await websocket.incoming.put({"type": "websocket.disconnect", "code": 1001})
    await asyncio.wait_for(streaming, timeout=5.0)

    assert hub.subscriber_count(scan.id) == 0
    assert websocket.sent == []


@pytest.mark.asyncio
async def test_end_to_end_with_executor(
    hub: BroadcastHub, repository: ScanRepository, executor, python_tools, make_scan,
) -> None:
    scan = await executor.start_scan(make_scan("_test_python", code="print('a'); print('b')"))
    websocket = _FakeWebSocket()

    await asyncio.wait_for(
        stream_scan_output(websocket, scan.id, hub, repository),  # type: ignore[arg-type]
        timeout=15.0,
    )

    done = [e for e in websocket.sent if e.get("done")]
    assert len(done) == 1
    assert done[0]["status"] == "completed"
    assert websocket.sent[-1] is done[0]


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_routes(test_app, repository: ScanRepository) -> None:
    scan = await _new_scan(repository, ScanStatus.FAILED)

    with TestClient(test_app) as client:
        with client.websocket_connect(f"/ws/scans/{scan.id}") as websocket:
            event = websocket.receive_json()
        assert event["done"] is True
        assert event["status"] == "failed"

        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"scan_id": scan.id})
            event = websocket.receive_json()
        assert event["status"] == "failed"

        with pytest.raises(WebSocketDisconnect) as not_found:
            with client.websocket_connect("/ws/scans/999") as websocket:
                websocket.receive_json()
        assert not_found.value.code == CLOSE_NOT_FOUND

        with pytest.raises(WebSocketDisconnect) as bad_request:
            with client.websocket_connect("/ws") as websocket:
                websocket.send_json({"scan": "nope"})
                websocket.receive_json()
        assert bad_request.value.code == CLOSE_BAD_REQUEST
