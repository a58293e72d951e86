"""Live update channel.

Fan-out of telemetry events to connected listeners. Delivery is
best-effort: no acknowledgement, no replay, and a slow listener only ever
loses its own updates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiveUpdate:
    """One broadcast event: a name plus positional arguments."""

    event: str
    args: tuple[Any, ...]
    published_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_json_dict(self) -> dict[str, Any]:
        return {"event": self.event, "args": [_jsonable(arg) for arg in self.args]}


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class LiveSubscription:
    """A listener's bounded buffer of pending updates."""

    def __init__(self, maxsize: int) -> None:
        self._queue: asyncio.Queue[LiveUpdate] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self, update: LiveUpdate) -> bool:
        try:
            self._queue.put_nowait(update)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def get(self) -> LiveUpdate:
        return await self._queue.get()

    def drain(self) -> list[LiveUpdate]:
        """Take every buffered update without waiting."""
        updates: list[LiveUpdate] = []
        while not self._queue.empty():
            updates.append(self._queue.get_nowait())
        return updates

    def __aiter__(self) -> LiveSubscription:
        return self

    async def __anext__(self) -> LiveUpdate:
        return await self._queue.get()


class LiveChannel:
    """Broadcast hub shared by the consumer (publisher) and websocket listeners.

    ``publish`` must be called from the event loop thread.
    """

    def __init__(self, *, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._subscribers: set[LiveSubscription] = set()
        self._published = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def published(self) -> int:
        return self._published

    def publish(self, event: str, *args: Any) -> int:
        """Offer an update to every subscriber; returns how many accepted it."""
        update = LiveUpdate(event=event, args=args)
        self._published += 1
        delivered = 0
        for subscription in list(self._subscribers):
            if subscription.offer(update):
                delivered += 1
            else:
                _logger.debug("Live subscriber buffer full; dropped %s", event)
        return delivered

    def open(self) -> LiveSubscription:
        subscription = LiveSubscription(self._queue_size)
        self._subscribers.add(subscription)
        return subscription

    def close(self, subscription: LiveSubscription) -> None:
        self._subscribers.discard(subscription)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[LiveSubscription]:
        subscription = self.open()
        try:
            yield subscription
        finally:
            self.close(subscription)
