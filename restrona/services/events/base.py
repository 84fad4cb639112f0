"""
Order Event Bus Abstract Base Class

Push-subscription channel used by the live staff dashboards. Events only
say *that* a restaurant's orders changed; subscribers re-read the full
current state instead of applying deltas, so a dropped or reconnected
subscription never drifts.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import AsyncIterator, Optional


@dataclass
class OrderEvent:
    """Notification that an order of a restaurant changed."""
    kind: str  # order.created | order.status_changed
    restaurant_id: int
    order_id: int
    status: str
    occurred_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "OrderEvent":
        return cls(
            kind=data["kind"],
            restaurant_id=int(data["restaurant_id"]),
            order_id=int(data["order_id"]),
            status=data["status"],
            occurred_at=data.get("occurred_at") or datetime.now(timezone.utc).isoformat(),
        )


class BaseEventBus(ABC):
    """Abstract base class for order event channels."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def publish(self, event: OrderEvent) -> None:
        """Fan an event out to every subscriber of its restaurant."""
        pass

    @abstractmethod
    def subscribe(self, restaurant_id: int) -> AbstractAsyncContextManager[AsyncIterator[OrderEvent]]:
        """
        Subscribe to one restaurant's events until the context exits.

        Usage:
            async with bus.subscribe(restaurant_id) as events:
                async for event in events:
                    ...
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check channel connectivity."""
        pass

    async def close(self) -> None:
        """Release connections held by the bus."""
        return None
