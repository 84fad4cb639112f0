"""
In-Memory Event Bus

Single-process fan-out over asyncio queues for development and tests.
Subscribers on other processes never see these events; use the Redis
bus when running more than one worker.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator

from restrona.services.events.base import BaseEventBus, OrderEvent

logger = logging.getLogger(__name__)


class InMemoryEventBus(BaseEventBus):

    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscribers: dict[int, set[asyncio.Queue]] = defaultdict(set)
        logger.info(f"InMemoryEventBus initialized (queue_size={queue_size})")

    @property
    def provider_name(self) -> str:
        return "memory"

    def subscriber_count(self, restaurant_id: int) -> int:
        return len(self._subscribers.get(restaurant_id, ()))

    async def publish(self, event: OrderEvent) -> None:
        for queue in list(self._subscribers.get(event.restaurant_id, ())):
            if queue.full():
                # Drop the oldest; every notification triggers a full re-read
                queue.get_nowait()
            queue.put_nowait(event)
        logger.debug(f"Published {event.kind} for order #{event.order_id}")

    @asynccontextmanager
    async def subscribe(self, restaurant_id: int) -> AsyncIterator[AsyncIterator[OrderEvent]]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[restaurant_id].add(queue)

        async def stream() -> AsyncIterator[OrderEvent]:
            while True:
                yield await queue.get()

        try:
            yield stream()
        finally:
            self._subscribers[restaurant_id].discard(queue)
            if not self._subscribers[restaurant_id]:
                del self._subscribers[restaurant_id]

    async def health_check(self) -> bool:
        return True
