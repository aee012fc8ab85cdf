"""Fan-out of server events to connected browser streams."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


class EventBroadcaster:
    """Deliver each published event to every subscribed queue.

    Slow consumers whose queue is full miss events rather than block the
    publisher.
    """

    def __init__(self, name: str, max_queue_size: int = 100) -> None:
        self.name = name
        self._max_queue_size = max_queue_size
        self._subscribers: set[asyncio.Queue] = set()

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.add(queue)
        logger.debug("%s stream client connected (%d total)", self.name, len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)
        logger.debug("%s stream client disconnected (%d total)", self.name, len(self._subscribers))

    @property
    def client_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: Dict[str, Any]) -> int:
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("Dropping %s event for a slow client", self.name)
                continue
            delivered += 1
        return delivered


__all__ = ["EventBroadcaster"]
