"""
WebSocket handler for live scan output.

Clients connect to ``/ws/scans/{scan_id}`` (or to ``/ws`` and send
``{"scan_id": N}`` as their first message) and receive one JSON frame per
output line::

    {"timestamp": "2026-10-18T14:30:05+00:00", "stream": "stdout", "line": "..."}

followed by exactly one terminal frame::

    {"done": true, "status": "completed", "timestamp": "..."}

The hub does not replay events, so the handler subscribes first and then
reads the scan.  If the scan is already terminal the client gets a
synthesized terminal frame straight away; the observer's ``finished`` flag
makes sure a real ``done`` racing with it is dropped.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from reconsuite.engine.broadcast import BroadcastHub
from reconsuite.engine.runner import OutputLine
from reconsuite.engine.store import ScanRepository

logger = logging.getLogger(__name__)

router = APIRouter()

# Application-defined close codes (4000-4999).
CLOSE_BAD_REQUEST: int = 4400
CLOSE_NOT_FOUND: int = 4404


# ---------------------------------------------------------------------------
# Observer
# ---------------------------------------------------------------------------


class WebSocketObserver:
    """Hub observer forwarding events to one WebSocket connection.

    Sends are serialised with a lock.  Once a ``done`` event has gone out,
    every later event is dropped and :attr:`finished` is set.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self._lock = asyncio.Lock()
        self.finished = asyncio.Event()

    async def send(self, event: dict[str, Any]) -> None:
        async with self._lock:
            if self.finished.is_set():
                return
            await self._websocket.send_json(event)
            if event.get("done"):
                self.finished.set()

    async def close(self) -> None:
        # Called by the hub after a failed delivery; ends the relay loop.
        self.finished.set()


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


async def stream_scan_output(
    websocket: WebSocket,
    scan_id: int,
    hub: BroadcastHub,
    repository: ScanRepository,
) -> None:
    """Relay the events of *scan_id* to an accepted *websocket*.

    Returns when the terminal event was sent, the client disconnected, or
    the scan does not exist (the socket is then closed with 4404).
    """
    observer = WebSocketObserver(websocket)
    hub.subscribe(scan_id, observer)
    logger.debug("Scan %s now has %d observer(s)", scan_id, hub.subscriber_count(scan_id))
    try:
        scan = await repository.get_scan(scan_id)
        if scan is None:
            await _close(websocket, CLOSE_NOT_FOUND)
            return
        if scan.status.is_terminal:
            await observer.send(OutputLine.terminal(scan.status.value).to_event())
            return
        await _relay_until_done(websocket, observer)
    finally:
        hub.unsubscribe(scan_id, observer)


async def _relay_until_done(websocket: WebSocket, observer: WebSocketObserver) -> None:
    finished = asyncio.ensure_future(observer.finished.wait())
    listener = asyncio.ensure_future(_listen_for_disconnect(websocket))
    try:
        await asyncio.wait({finished, listener}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in (finished, listener):
            waiter.cancel()
        await asyncio.gather(finished, listener, return_exceptions=True)


async def _listen_for_disconnect(websocket: WebSocket) -> None:
    """Block until the client disconnects; client messages are discarded."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


async def _close(websocket: WebSocket, code: int = 1000) -> None:
    if (
        websocket.application_state is WebSocketState.CONNECTED
        and websocket.client_state is WebSocketState.CONNECTED
    ):
        await websocket.close(code=code)


# ---------------------------------------------------------------------------
# WebSocket endpoints
# ---------------------------------------------------------------------------


@router.websocket("/ws/scans/{scan_id}")
async def scan_websocket(websocket: WebSocket, scan_id: int) -> None:
    """Stream the output of the scan named in the path."""
    await websocket.accept()
    logger.info("WebSocket connected for scan %s", scan_id)
    try:
        await stream_scan_output(
            websocket,
            scan_id,
            websocket.app.state.hub,
            websocket.app.state.repository,
        )
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected for scan %s", scan_id)
    finally:
        await _close(websocket)
        logger.info("WebSocket cleanup completed for scan %s", scan_id)


@router.websocket("/ws")
async def select_scan_websocket(websocket: WebSocket) -> None:
    """Stream the output of the scan named in the client's first message."""
    await websocket.accept()
    try:
        message = await websocket.receive_json()
        scan_id = int(message["scan_id"])
    except WebSocketDisconnect:
        return
    except (KeyError, TypeError, ValueError):
        await _close(websocket, CLOSE_BAD_REQUEST)
        return

    logger.info("WebSocket selected scan %s", scan_id)
    try:
        await stream_scan_output(
            websocket,
            scan_id,
            websocket.app.state.hub,
            websocket.app.state.repository,
        )
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected for scan %s", scan_id)
    finally:
        await _close(websocket)
