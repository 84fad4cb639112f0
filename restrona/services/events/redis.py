"""
Redis Event Bus

Cross-process order notifications over Redis pub/sub, one channel per
restaurant. Pub/sub is fire-and-forget: messages published while a
subscriber is disconnected are lost, which is acceptable because every
(re)subscription starts from a full snapshot.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as redis

from restrona.core.config import get_settings
from restrona.core.errors import PersistenceError
from restrona.services.events.base import BaseEventBus, OrderEvent

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "restrona:orders"


def channel_for(restaurant_id: int) -> str:
    return f"{CHANNEL_PREFIX}:{restaurant_id}"


class RedisEventBus(BaseEventBus):

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url or get_settings().redis_url
        self.client = client or redis.from_url(self.redis_url, decode_responses=True)
        logger.info("RedisEventBus initialized")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def publish(self, event: OrderEvent) -> None:
        try:
            await self.client.publish(channel_for(event.restaurant_id), json.dumps(event.to_dict()))
        except redis.RedisError as e:
            logger.error(f"Failed to publish {event.kind} for order #{event.order_id}: {e}")
            raise PersistenceError("Order event channel unavailable")

    @asynccontextmanager
    async def subscribe(self, restaurant_id: int) -> AsyncIterator[AsyncIterator[OrderEvent]]:
        pubsub = self.client.pubsub(ignore_subscribe_messages=True)
        await pubsub.subscribe(channel_for(restaurant_id))

        async def stream() -> AsyncIterator[OrderEvent]:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield OrderEvent.from_dict(json.loads(message["data"]))
                except (ValueError, KeyError) as e:
                    logger.warning(f"Ignoring malformed order event: {e}")

        try:
            yield stream()
        finally:
            await pubsub.unsubscribe(channel_for(restaurant_id))
            await pubsub.aclose()

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except redis.RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
