"""
Redis pub/sub mirror of scan events.

When ``REDIS_URL`` is configured the executor attaches one
:class:`RedisChannelObserver` per scan, so processes outside the API
server (dashboards, log shippers) can follow live output on the
``scan:<id>`` channel.
"""

from __future__ import annotations

import json
from typing import Any, Callable

from redis.asyncio import Redis


def channel_name(scan_id: int) -> str:
    """Return the Redis Pub/Sub channel name for a given scan.

    Args:
        scan_id: The integer id of the scan.

    Returns:
        A string of the form ``scan:<id>``.
    """
    return f"scan:{scan_id}"


class RedisChannelObserver:
    """Hub observer that publishes every event as JSON to a Redis channel.

    The Redis client is shared across scans and owned by the application,
    so :meth:`close` leaves it open.
    """

    def __init__(self, client: Redis, channel: str) -> None:
        self._client = client
        self.channel = channel

    async def send(self, event: dict[str, Any]) -> None:
        await self._client.publish(self.channel, json.dumps(event))

    async def close(self) -> None:
        return None

    def __repr__(self) -> str:
        return f"<RedisChannelObserver channel={self.channel}>"


def redis_observer_factory(client: Redis) -> Callable[[int], RedisChannelObserver]:
    """Build the executor's ``observer_factory`` for *client*."""

    def _factory(scan_id: int) -> RedisChannelObserver:
        return RedisChannelObserver(client, channel_name(scan_id))

    return _factory
