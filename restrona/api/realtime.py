"""
Live order dashboard over WebSocket.

Connect to ``/api/restaurants/{id}/orders/live?token=<access token>``,
optionally with one or more ``status`` filters. The server sends a full
snapshot on connect and a fresh full snapshot after every order change;
clients replace their list with each snapshot. Send ``ping`` to get a
``pong``.
"""

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from restrona.api.deps import get_events, get_identity
from restrona.core.errors import AuthorizationError, DenyReason, ValidationError
from restrona.database import get_db
from restrona.schemas import OrderResponse
from restrona.services.authorization import AuthorizationGate
from restrona.services.events import BaseEventBus, OrderEvent
from restrona.services.identity import BaseIdentityProvider
from restrona.services.orders import READ_PERMISSIONS, OrderLifecycleEngine, parse_status
from restrona.services.staff import StaffService

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Realtime"])


async def build_snapshot(
    engine: OrderLifecycleEngine,
    restaurant_id: int,
    statuses: Optional[list] = None,
    trigger: Optional[OrderEvent] = None,
) -> dict[str, Any]:
    orders = await engine.order_snapshot(restaurant_id, statuses)
    snapshot = {
        "type": "snapshot",
        "restaurant_id": restaurant_id,
        "trigger": trigger.to_dict() if trigger else None,
        "orders": [OrderResponse.from_order(o).model_dump(mode="json") for o in orders],
    }
    # End the read transaction so the next snapshot sees new commits
    await engine.db.rollback()
    return snapshot


async def order_snapshots(
    db: AsyncSession,
    events: BaseEventBus,
    restaurant_id: int,
    statuses: Optional[list] = None,
) -> AsyncIterator[dict[str, Any]]:
    """Full snapshot first, then one full snapshot per order event."""
    engine = OrderLifecycleEngine(db)
    async with events.subscribe(restaurant_id) as stream:
        yield await build_snapshot(engine, restaurant_id, statuses)
        async for event in stream:
            yield await build_snapshot(engine, restaurant_id, statuses, trigger=event)


@router.websocket("/restaurants/{restaurant_id}/orders/live")
async def live_orders(
    websocket: WebSocket,
    restaurant_id: int,
    token: Optional[str] = Query(None),
    status: Optional[List[str]] = Query(None),
    db: AsyncSession = Depends(get_db),
    identity: BaseIdentityProvider = Depends(get_identity),
    events: BaseEventBus = Depends(get_events),
):
    try:
        principal = await StaffService(db, identity).resolve_principal(token)
        AuthorizationGate().require(
            principal,
            required_permission=READ_PERMISSIONS,
            resource_restaurant_id=restaurant_id,
            action="watch_orders",
        )
        statuses = [parse_status(s) for s in status] if status else None
    except AuthorizationError as e:
        code = 4001 if e.reason == DenyReason.UNAUTHENTICATED else 4003
        await websocket.close(code=code, reason=e.message)
        return
    except ValidationError as e:
        await websocket.close(code=4000, reason=e.message)
        return

    await websocket.accept()
    logger.info(f"Live feed opened for restaurant #{restaurant_id} by {principal.user_id}")

    feed = order_snapshots(db, events, restaurant_id, statuses)
    send_lock = asyncio.Lock()

    async def pump() -> None:
        async for snapshot in feed:
            async with send_lock:
                await websocket.send_json(snapshot)

    pump_task = asyncio.create_task(pump())
    try:
        while True:
            message = await websocket.receive_text()
            if message == "ping":
                async with send_lock:
                    await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info(f"Live feed closed for restaurant #{restaurant_id}")
    finally:
        pump_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump_task
        await feed.aclose()
