"""
Order Lifecycle Engine

Owns order creation and every order status change.

Status workflow:
    pending -> confirmed | cancelled
    confirmed -> preparing
    preparing -> ready
    ready -> delivered
    delivered, cancelled: terminal

Status is only ever written through ``compare_and_set_status``, a
conditional ``UPDATE ... WHERE id = ? AND status = ?``. When two staff
members race, exactly one write lands; the loser re-reads and gets either
an idempotent success (same target) or a ConflictError.
"""

import itertools
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional, Union

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restrona.core.config import get_settings
from restrona.core.errors import (
    ConflictError,
    IllegalTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from restrona.models import (
    MenuItem,
    Order,
    OrderStatus,
    OrderType,
    Permission,
    Restaurant,
    RestaurantStatus,
    RestaurantTable,
    TableStatus,
    UserRole,
    as_utc,
    utcnow,
)
from restrona.services.authorization import AuthorizationGate, Principal
from restrona.services.cart import CENT, to_money
from restrona.services.events import BaseEventBus, OrderEvent

logger = logging.getLogger(__name__)


# =============================================================================
# STATE MACHINE
# =============================================================================

ORDER_TRANSITIONS: dict[OrderStatus, frozenset] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

# Statuses some transition leads to; pending is only ever an initial status
REACHABLE_STATUSES = frozenset().union(*ORDER_TRANSITIONS.values())

ACTIVE_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
})

STAFF_ROLES = (UserRole.RESTAURANT_ADMIN, UserRole.WAITER)
WRITE_PERMISSIONS = (Permission.MANAGE_ORDERS, Permission.UPDATE_ORDER_STATUS)
READ_PERMISSIONS = (Permission.MANAGE_ORDERS, Permission.VIEW_ORDERS)


def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
    """Accept an OrderStatus or its string value (case-insensitive)."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        valid = [s.value for s in OrderStatus]
        raise ValidationError(f"Invalid order status '{value}'. Options: {valid}")


def is_legal_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def next_statuses(current: OrderStatus) -> list[str]:
    """Statuses a client may offer as the next step, in workflow order."""
    allowed = ORDER_TRANSITIONS.get(current, frozenset())
    return [s.value for s in OrderStatus if s in allowed]


# =============================================================================
# VALUE OBJECTS
# =============================================================================

@dataclass
class CustomerInfo:
    name: str
    phone: str
    notes: Optional[str] = None


@dataclass
class OrderReceipt:
    """What a customer gets back after submitting."""
    order_id: int
    order_number: str
    total: Decimal
    status: OrderStatus


@dataclass
class StatusChange:
    order_id: int
    status: OrderStatus
    updated_at: datetime
    changed: bool


_order_sequence = itertools.count(1)


def generate_order_number(prefix: str = "ORD") -> str:
    """Prefix + millisecond timestamp + per-process sequence."""
    millis = int(time.time() * 1000)
    return f"{prefix}-{millis}-{next(_order_sequence) % 10000:04d}"


def _normalize_lines(items: Iterable[Any]) -> dict[int, int]:
    """Merge (menu_item_id, quantity) pairs, summing duplicate ids."""
    merged: dict[int, int] = {}
    for entry in items or ():
        if isinstance(entry, dict):
            item_id = entry.get("menu_item_id", entry.get("id"))
            quantity = entry.get("quantity", 1)
        else:
            item_id, quantity = entry

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Quantity for item {item_id} must be a whole number of at least 1")
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            raise ValidationError(f"Invalid menu item id: {item_id!r}")

        merged[item_id] = merged.get(item_id, 0) + quantity

    if not merged:
        raise ValidationError("An order must contain at least one item")
    return merged


def lock_table(table_id: int):
    """
    Row-locking read of a table. Order creation and table release both take
    it first, so occupying and releasing one table never interleave.
    """
    return (
        select(RestaurantTable)
        .where(RestaurantTable.id == table_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


async def compare_and_set_status(
    db: AsyncSession,
    order_id: int,
    expected: OrderStatus,
    target: OrderStatus,
    actor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> bool:
    """
    Move ``order_id`` from ``expected`` to ``target`` only if it is still at
    ``expected``. Returns whether the row was written. Does not commit.
    """
    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == expected)
        .values(status=target, updated_at=now or utcnow(), updated_by=actor_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


# =============================================================================
# ENGINE
# =============================================================================

class OrderLifecycleEngine:
    """
    Order operations bound to one request's session and collaborators.

    Args:
        db: Session for this request
        events: Push channel notified after each commit (optional)
        gate: Authorization gate (a fresh one by default)
    """

    def __init__(
        self,
        db: AsyncSession,
        events: Optional[BaseEventBus] = None,
        gate: Optional[AuthorizationGate] = None,
    ):
        self.db = db
        self.events = events
        self.gate = gate or AuthorizationGate()
        self.settings = get_settings()

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    async def create_order(
        self,
        restaurant_id: int,
        table_id: Optional[int],
        customer: CustomerInfo,
        items: Iterable[Any],
        order_type: OrderType = OrderType.DINE_IN,
    ) -> OrderReceipt:
        """
        Submit a customer order.

        Prices come from the stored menu; anything the client sent about
        prices or totals is ignored.
        """
        lines = _normalize_lines(items)

        name = (customer.name or "").strip()
        phone = (customer.phone or "").strip()
        if not name:
            raise ValidationError("Customer name is required")
        if not phone:
            raise ValidationError("Customer phone is required")

        try:
            restaurant = await self.db.get(Restaurant, restaurant_id)
            if restaurant is None:
                raise NotFoundError(f"Restaurant #{restaurant_id} not found")
            if restaurant.status != RestaurantStatus.ACTIVE:
                raise ValidationError(f"Restaurant #{restaurant_id} is not accepting orders")

            table = None
            if table_id is not None:
                table = (await self.db.execute(lock_table(table_id))).scalar_one_or_none()
                if table is None or table.restaurant_id != restaurant_id:
                    raise NotFoundError(f"Table #{table_id} not found in restaurant #{restaurant_id}")
                if table.status == TableStatus.MAINTENANCE:
                    raise ValidationError(f"Table {table.table_number} is under maintenance")
            elif order_type == OrderType.DINE_IN:
                raise ValidationError("Dine-in orders require a table")

            result = await self.db.execute(
                select(MenuItem).where(
                    MenuItem.restaurant_id == restaurant_id,
                    MenuItem.id.in_(list(lines)),
                )
            )
            menu = {item.id: item for item in result.scalars().all()}

            order_items = []
            total = Decimal("0.00")
            for item_id, quantity in lines.items():
                item = menu.get(item_id)
                if item is None:
                    raise ValidationError(f"Menu item #{item_id} is not on this restaurant's menu")
                if not item.is_available:
                    raise ValidationError(f"'{item.name}' is currently unavailable")

                price = to_money(item.price)
                line_total = (price * quantity).quantize(CENT)
                total += line_total
                order_items.append({
                    "id": item.id,
                    "name": item.name,
                    "price": float(price),
                    "quantity": quantity,
                    "total": float(line_total),
                })

            now = utcnow()
            order = Order(
                order_number=generate_order_number(self.settings.order_number_prefix),
                restaurant_id=restaurant_id,
                table_id=table_id,
                order_type=order_type,
                customer_name=name,
                customer_phone=phone,
                customer_notes=customer.notes,
                items=order_items,
                total=total.quantize(CENT),
                status=OrderStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self.db.add(order)

            if table is not None and table.status == TableStatus.AVAILABLE:
                table.status = TableStatus.OCCUPIED
                table.updated_at = now

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to store order for restaurant #{restaurant_id}: {e}")
            raise PersistenceError("Could not save the order, please retry", restaurant_id=restaurant_id)

        logger.info(
            f"Order {order.order_number} (#{order.id}) created for restaurant #{restaurant_id} "
            f"table={table_id} total={order.total}"
        )
        await self._publish("order.created", order.restaurant_id, order.id, OrderStatus.PENDING)

        return OrderReceipt(
            order_id=order.id,
            order_number=order.order_number,
            total=to_money(order.total),
            status=OrderStatus.PENDING,
        )

    # -------------------------------------------------------------------------
    # Status changes
    # -------------------------------------------------------------------------

    async def advance_status(
        self,
        order_id: int,
        target_status: Union[str, OrderStatus],
        actor: Optional[Principal],
        expected_status: Union[str, OrderStatus, None] = None,
    ) -> StatusChange:
        """
        Move an order one step along the workflow.

        ``expected_status`` is the status the caller last saw; when the
        stored status has moved on since, the call fails with ConflictError
        unless the order already sits at ``target_status``.
        """
        target = parse_status(target_status)
        expected = parse_status(expected_status) if expected_status is not None else None

        order = await self._load(order_id)
        self.gate.require(
            actor,
            required_role=STAFF_ROLES,
            required_permission=WRITE_PERMISSIONS,
            resource_restaurant_id=order.restaurant_id,
            action="advance_order_status",
        )

        current = order.status
        if expected is not None and current != expected:
            if current == target and is_legal_transition(expected, target):
                return self._unchanged(order)
            raise ConflictError(
                f"Order #{order_id} is now '{current.value}', not '{expected.value}'; reload and retry",
                order_id=order_id,
                current_status=current,
            )

        if current == target and target in REACHABLE_STATUSES:
            return self._unchanged(order)

        if not is_legal_transition(current, target):
            logger.info(f"Rejected order #{order_id} transition {current.value} -> {target.value}")
            raise IllegalTransitionError(current, target)

        now = utcnow()
        try:
            written = await compare_and_set_status(
                self.db, order.id, current, target, actor_id=actor.user_id, now=now
            )
            if not written:
                await self.db.rollback()
                order = await self._load(order_id)
                if order.status == target:
                    return self._unchanged(order)
                raise ConflictError(
                    f"Order #{order_id} was changed to '{order.status.value}' by someone else",
                    order_id=order_id,
                    current_status=order.status,
                )

            if target in TERMINAL_STATUSES:
                await self._release_table(order.table_id, order.id, now)

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update order #{order_id} status: {e}")
            raise PersistenceError("Could not update the order, please retry", order_id=order_id)

        logger.info(
            f"Order #{order_id} {current.value} -> {target.value} by {actor.user_id}"
        )
        await self._publish("order.status_changed", order.restaurant_id, order_id, target)

        return StatusChange(order_id=order_id, status=target, updated_at=now, changed=True)

    async def cancel_order(
        self,
        order_id: int,
        actor: Optional[Principal],
        expected_status: Union[str, OrderStatus, None] = None,
    ) -> StatusChange:
        return await self.advance_status(order_id, OrderStatus.CANCELLED, actor, expected_status)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_orders(
        self,
        restaurant_id: int,
        actor: Optional[Principal],
        statuses: Optional[Iterable[Union[str, OrderStatus]]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[int, list[Order]]:
        """Orders of one restaurant, newest first."""
        self.gate.require(
            actor,
            required_permission=READ_PERMISSIONS,
            resource_restaurant_id=restaurant_id,
            action="list_orders",
        )
        wanted = [parse_status(s) for s in statuses] if statuses else []

        query = select(Order).where(Order.restaurant_id == restaurant_id)
        count_query = select(func.count(Order.id)).where(Order.restaurant_id == restaurant_id)
        if wanted:
            query = query.where(Order.status.in_(wanted))
            count_query = count_query.where(Order.status.in_(wanted))

        total = (await self.db.execute(count_query)).scalar() or 0
        query = (
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return total, list(result.scalars().all())

    async def get_order(self, order_id: int, actor: Optional[Principal]) -> Order:
        order = await self._load(order_id)
        self.gate.require(
            actor,
            required_permission=READ_PERMISSIONS,
            resource_restaurant_id=order.restaurant_id,
            action="get_order",
        )
        return order

    async def order_snapshot(
        self,
        restaurant_id: int,
        statuses: Optional[Iterable[Union[str, OrderStatus]]] = None,
    ) -> list[Order]:
        """
        Full current order list for a live dashboard. Callers gate access
        once when the subscription opens.
        """
        wanted = [parse_status(s) for s in statuses] if statuses else []
        query = select(Order).where(Order.restaurant_id == restaurant_id)
        if wanted:
            query = query.where(Order.status.in_(wanted))
        query = query.order_by(Order.created_at.desc(), Order.id.desc()).execution_options(
            populate_existing=True
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _load(self, order_id: int) -> Order:
        result = await self.db.execute(
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError(f"Order #{order_id} not found")
        return order

    def _unchanged(self, order: Order) -> StatusChange:
        return StatusChange(
            order_id=order.id,
            status=order.status,
            updated_at=as_utc(order.updated_at),
            changed=False,
        )

    async def _release_table(self, table_id: Optional[int], order_id: int, now: datetime) -> None:
        """Free an occupied table once no other active order is on it."""
        if table_id is None:
            return

        await self.db.execute(lock_table(table_id))

        remaining = await self.db.execute(
            select(func.count(Order.id)).where(
                Order.table_id == table_id,
                Order.id != order_id,
                Order.status.in_(list(ACTIVE_STATUSES)),
            )
        )
        if remaining.scalar():
            return

        result = await self.db.execute(
            update(RestaurantTable)
            .where(RestaurantTable.id == table_id, RestaurantTable.status == TableStatus.OCCUPIED)
            .values(status=TableStatus.AVAILABLE, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"Table #{table_id} released")

    async def _publish(self, kind: str, restaurant_id: int, order_id: int, status: OrderStatus) -> None:
        if self.events is None:
            return
        try:
            await self.events.publish(OrderEvent(
                kind=kind,
                restaurant_id=restaurant_id,
                order_id=order_id,
                status=status.value,
            ))
        except PersistenceError as e:
            # Dashboards resync from a full snapshot on reconnect
            logger.warning(f"Could not publish {kind} for order #{order_id}: {e.message}")
