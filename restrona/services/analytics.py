"""
Dashboard Analytics

Aggregates for the admin dashboards. Revenue only counts delivered orders.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from restrona.models import (
    MenuItem,
    Order,
    OrderStatus,
    Permission,
    Restaurant,
    RestaurantStatus,
    RestaurantTable,
    TableStatus,
    User,
    UserRole,
    utcnow,
)
from restrona.services.authorization import AuthorizationGate, Principal
from restrona.services.cart import CENT, to_money
from restrona.services.orders import ACTIVE_STATUSES

logger = logging.getLogger(__name__)


@dataclass
class RestaurantSummary:
    restaurant_id: int
    total_orders: int
    orders_by_status: dict[str, int]
    active_orders: int
    revenue: Decimal
    today_revenue: Decimal
    average_order_value: Decimal
    tables_total: int
    tables_occupied: int
    menu_items: int


@dataclass
class PlatformSummary:
    restaurants_by_status: dict[str, int]
    users_by_role: dict[str, int]
    total_orders: int
    revenue: Decimal


def _money(value) -> Decimal:
    return to_money(value) if value is not None else Decimal("0.00")


async def _grouped(db: AsyncSession, column, enum_type, *where) -> dict[str, int]:
    query = select(column, func.count()).group_by(column)
    if where:
        query = query.where(*where)
    counts = {member.value: 0 for member in enum_type}
    for key, count in (await db.execute(query)).all():
        counts[enum_type(key).value] = count
    return counts


class AnalyticsService:
    def __init__(self, db: AsyncSession, gate: Optional[AuthorizationGate] = None):
        self.db = db
        self.gate = gate or AuthorizationGate()

    async def restaurant_summary(self, restaurant_id: int, actor: Optional[Principal]) -> RestaurantSummary:
        self.gate.require(
            actor,
            required_permission=Permission.VIEW_ANALYTICS,
            resource_restaurant_id=restaurant_id,
            action="view_restaurant_analytics",
        )

        by_status = await _grouped(self.db, Order.status, OrderStatus, Order.restaurant_id == restaurant_id)

        delivered = (
            Order.restaurant_id == restaurant_id,
            Order.status == OrderStatus.DELIVERED,
        )
        revenue = _money((await self.db.execute(select(func.sum(Order.total)).where(*delivered))).scalar())

        today_start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        today_revenue = _money((await self.db.execute(
            select(func.sum(Order.total)).where(*delivered, Order.created_at >= today_start)
        )).scalar())

        delivered_count = by_status[OrderStatus.DELIVERED.value]
        average = (revenue / delivered_count).quantize(CENT) if delivered_count else Decimal("0.00")

        tables = await _grouped(
            self.db, RestaurantTable.status, TableStatus, RestaurantTable.restaurant_id == restaurant_id
        )
        menu_items = (await self.db.execute(
            select(func.count(MenuItem.id)).where(MenuItem.restaurant_id == restaurant_id)
        )).scalar() or 0

        return RestaurantSummary(
            restaurant_id=restaurant_id,
            total_orders=sum(by_status.values()),
            orders_by_status=by_status,
            active_orders=sum(by_status[s.value] for s in ACTIVE_STATUSES),
            revenue=revenue,
            today_revenue=today_revenue,
            average_order_value=average,
            tables_total=sum(tables.values()),
            tables_occupied=tables[TableStatus.OCCUPIED.value],
            menu_items=menu_items,
        )

    async def platform_summary(self, actor: Optional[Principal]) -> PlatformSummary:
        self.gate.require(actor, required_role=UserRole.SUPER_ADMIN, action="view_platform_analytics")

        restaurants = await _grouped(self.db, Restaurant.status, RestaurantStatus)
        users = await _grouped(self.db, User.role, UserRole)
        total_orders = (await self.db.execute(select(func.count(Order.id)))).scalar() or 0
        revenue = _money((await self.db.execute(
            select(func.sum(Order.total)).where(Order.status == OrderStatus.DELIVERED)
        )).scalar())

        return PlatformSummary(
            restaurants_by_status=restaurants,
            users_by_role=users,
            total_orders=total_orders,
            revenue=revenue,
        )
