"""
Topic-per-scan publish/subscribe hub.

Observers subscribe to a scan id and receive every event published for it
from then on.  There is no replay: publishing to a topic without observers
drops the event.  Late subscribers recover the terminal state by querying
the scan (see :mod:`reconsuite.api.v1.websocket`).

Delivery to each observer is bounded by a timeout.  An observer whose
``send`` raises or times out is unsubscribed and closed; the other
observers of the topic are unaffected.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Hashable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_DEFAULT_SEND_TIMEOUT_SECONDS: float = 5.0


@runtime_checkable
class Observer(Protocol):
    """Anything that can receive scan events."""

    async def send(self, event: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class BroadcastHub:
    """Registry of observers keyed by topic.

    Structural changes (subscribe/unsubscribe) take a lock; ``publish``
    copies the observer set under the lock and delivers outside of it, so a
    slow observer never blocks subscription changes.

    Args:
        send_timeout: Per-observer delivery bound in seconds, ``None`` to
            wait indefinitely.
    """

    def __init__(self, send_timeout: Optional[float] = _DEFAULT_SEND_TIMEOUT_SECONDS) -> None:
        self._send_timeout = send_timeout
        self._topics: dict[Hashable, set[Observer]] = {}
        self._lock = threading.Lock()

    def subscribe(self, topic: Hashable, observer: Observer) -> None:
        with self._lock:
            self._topics.setdefault(topic, set()).add(observer)
        logger.debug("Observer subscribed", extra={"action": "hub_subscribe", "target": topic})

    def unsubscribe(self, topic: Hashable, observer: Observer) -> bool:
        """Remove *observer* from *topic*.

        Returns:
            ``True`` if the observer was registered, ``False`` otherwise.
        """
        with self._lock:
            observers = self._topics.get(topic)
            if observers is None or observer not in observers:
                return False
            observers.discard(observer)
            if not observers:
                del self._topics[topic]
        logger.debug("Observer unsubscribed", extra={"action": "hub_unsubscribe", "target": topic})
        return True

    def subscriber_count(self, topic: Hashable) -> int:
        with self._lock:
            return len(self._topics.get(topic, ()))

    async def publish(self, topic: Hashable, event: dict[str, Any]) -> int:
        """Deliver *event* to every current observer of *topic*.

        Args:
            topic: The scan id.
            event: JSON-serialisable event payload.

        Returns:
            Number of observers that received the event.
        """
        with self._lock:
            observers = list(self._topics.get(topic, ()))
        if not observers:
            return 0

        outcomes = await asyncio.gather(
            *(self._deliver(topic, observer, event) for observer in observers)
        )
        return sum(outcomes)

    async def _deliver(self, topic: Hashable, observer: Observer, event: dict[str, Any]) -> bool:
        try:
            await asyncio.wait_for(observer.send(event), timeout=self._send_timeout)
            return True
        except Exception as exc:  # noqa: BLE001
            logger.info(
                "Dropping observer after failed delivery: %s",
                str(exc) or type(exc).__name__,
                extra={"action": "hub_drop", "target": topic},
            )

        self.unsubscribe(topic, observer)
        try:
            await observer.close()
        except Exception:  # noqa: BLE001
            logger.debug("Error closing dropped observer", exc_info=True)
        return False
