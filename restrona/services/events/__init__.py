"""
Order Event Bus Factory

Returns the in-memory or Redis event bus based on ENV_MODE.
"""

import logging
from functools import lru_cache

from restrona.core.config import get_settings
from restrona.services.events.base import BaseEventBus, OrderEvent
from restrona.services.events.memory import InMemoryEventBus
from restrona.services.events.redis import RedisEventBus

logger = logging.getLogger(__name__)


@lru_cache()
def get_event_bus() -> BaseEventBus:
    """Get the configured event bus."""
    settings = get_settings()

    if settings.is_development:
        logger.info("Event Bus: Using InMemoryEventBus (development mode)")
        return InMemoryEventBus()
    else:
        logger.info(f"Event Bus: Using RedisEventBus ({settings.env_mode.value} mode)")
        return RedisEventBus(settings.redis_url)


def reset_event_bus() -> None:
    """Clear the cached bus instance."""
    get_event_bus.cache_clear()


__all__ = [
    "get_event_bus",
    "reset_event_bus",
    "BaseEventBus",
    "OrderEvent",
    "InMemoryEventBus",
    "RedisEventBus",
]
