"""
Menu Catalog

Per-restaurant menu items. Staff see every item; the customer menu page
(reached through a table's QR code) only sees available ones.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from restrona.core.errors import NotFoundError, ValidationError
from restrona.database import commit_or_raise
from restrona.models import MenuItem, Permission, Restaurant, RestaurantTable, UserRole, utcnow
from restrona.services.authorization import AuthorizationGate, Principal
from restrona.services.cart import to_money
from restrona.services.restaurants import RestaurantRegistry

logger = logging.getLogger(__name__)

ITEM_FIELDS = ("name", "description", "price", "category", "image_url", "is_available")


@dataclass
class PublicMenu:
    """What a customer sees after scanning a table's QR code."""
    restaurant: Restaurant
    items: list[MenuItem]
    categories: list[str]
    table: Optional[RestaurantTable] = None


def _clean_item_fields(changes: dict[str, Any]) -> dict[str, Any]:
    unknown = set(changes) - set(ITEM_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown menu item fields: {sorted(unknown)}")

    cleaned = dict(changes)
    if "name" in cleaned:
        cleaned["name"] = (cleaned["name"] or "").strip()
        if not cleaned["name"]:
            raise ValidationError("Menu item name is required")
    if "price" in cleaned:
        cleaned["price"] = to_money(cleaned["price"])
        if cleaned["price"] < 0:
            raise ValidationError("Menu item price cannot be negative")
    if "category" in cleaned:
        cleaned["category"] = (cleaned["category"] or "").strip() or "General"
    if "is_available" in cleaned and not isinstance(cleaned["is_available"], bool):
        raise ValidationError("is_available must be true or false")
    return cleaned


class MenuCatalog:
    def __init__(self, db: AsyncSession, gate: Optional[AuthorizationGate] = None):
        self.db = db
        self.gate = gate or AuthorizationGate()

    def _require_manage(self, actor: Optional[Principal], restaurant_id: int, action: str) -> None:
        self.gate.require(
            actor,
            required_role=UserRole.RESTAURANT_ADMIN,
            required_permission=Permission.MANAGE_MENUS,
            resource_restaurant_id=restaurant_id,
            action=action,
        )

    async def _get_item(self, restaurant_id: int, item_id: int) -> MenuItem:
        item = await self.db.get(MenuItem, item_id)
        if item is None or item.restaurant_id != restaurant_id:
            raise NotFoundError(f"Menu item #{item_id} not found in restaurant #{restaurant_id}")
        return item

    async def create_item(
        self,
        restaurant_id: int,
        actor: Optional[Principal],
        name: str,
        price: Any,
        **fields: Any,
    ) -> MenuItem:
        self._require_manage(actor, restaurant_id, "create_menu_item")
        if await self.db.get(Restaurant, restaurant_id) is None:
            raise NotFoundError(f"Restaurant #{restaurant_id} not found")

        cleaned = _clean_item_fields({"name": name, "price": price, **fields})
        cleaned.setdefault("category", "General")
        cleaned.setdefault("is_available", True)

        item = MenuItem(restaurant_id=restaurant_id, **cleaned)
        self.db.add(item)
        await commit_or_raise(self.db, "create menu item")

        logger.info(f"Menu item #{item.id} '{item.name}' added to restaurant #{restaurant_id}")
        return item

    async def update_item(
        self,
        restaurant_id: int,
        item_id: int,
        actor: Optional[Principal],
        **changes: Any,
    ) -> MenuItem:
        self._require_manage(actor, restaurant_id, "update_menu_item")
        item = await self._get_item(restaurant_id, item_id)

        for key, value in _clean_item_fields(changes).items():
            setattr(item, key, value)
        item.updated_at = utcnow()
        await commit_or_raise(self.db, "update menu item")
        return item

    async def set_availability(
        self,
        restaurant_id: int,
        item_id: int,
        is_available: bool,
        actor: Optional[Principal],
    ) -> MenuItem:
        item = await self.update_item(restaurant_id, item_id, actor, is_available=is_available)
        logger.info(f"Menu item #{item_id} availability -> {is_available}")
        return item

    async def delete_item(self, restaurant_id: int, item_id: int, actor: Optional[Principal]) -> None:
        self._require_manage(actor, restaurant_id, "delete_menu_item")
        item = await self._get_item(restaurant_id, item_id)

        await self.db.delete(item)
        await commit_or_raise(self.db, "delete menu item")
        logger.info(f"Menu item #{item_id} deleted from restaurant #{restaurant_id}")

    async def list_items(
        self,
        restaurant_id: int,
        actor: Optional[Principal],
        category: Optional[str] = None,
    ) -> list[MenuItem]:
        """Every item of the restaurant, including unavailable ones."""
        self.gate.require(actor, resource_restaurant_id=restaurant_id, action="list_menu_items")

        query = select(MenuItem).where(MenuItem.restaurant_id == restaurant_id)
        if category:
            query = query.where(MenuItem.category == category)
        result = await self.db.execute(query.order_by(MenuItem.category, MenuItem.name, MenuItem.id))
        return list(result.scalars().all())

    async def public_menu(self, restaurant_id: int, table_id: Optional[int] = None) -> PublicMenu:
        restaurant = await RestaurantRegistry(self.db, self.gate).get_public(restaurant_id)

        table = None
        if table_id is not None:
            table = await self.db.get(RestaurantTable, table_id)
            if table is None or table.restaurant_id != restaurant_id:
                raise NotFoundError(f"Table #{table_id} not found in restaurant #{restaurant_id}")

        result = await self.db.execute(
            select(MenuItem)
            .where(MenuItem.restaurant_id == restaurant_id, MenuItem.is_available.is_(True))
            .order_by(MenuItem.category, MenuItem.name, MenuItem.id)
        )
        items = list(result.scalars().all())
        categories = sorted({item.category for item in items})

        return PublicMenu(restaurant=restaurant, items=items, categories=categories, table=table)
