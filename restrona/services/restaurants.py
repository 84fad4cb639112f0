"""
Restaurant Registry

Tenant records: profile, opening hours, operational settings and status.
Creating, suspending and deleting tenants is reserved to super admins;
restaurant admins edit their own restaurant's profile and settings.
"""

import logging
import re
from typing import Any, Optional

from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restrona.core.errors import NotFoundError, PersistenceError, ValidationError
from restrona.database import commit_or_raise
from restrona.models import (
    DEFAULT_OPENING_HOURS,
    DEFAULT_RESTAURANT_SETTINGS,
    MenuItem,
    Order,
    Permission,
    Restaurant,
    RestaurantStatus,
    RestaurantTable,
    User,
    UserRole,
    utcnow,
)
from restrona.services.authorization import AuthorizationGate, Principal

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
PROFILE_FIELDS = ("name", "type", "description", "phone", "email", "website", "address")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

SETTING_TYPES = {
    "auto_accept_orders": bool,
    "require_table_reservation": bool,
    "allow_walk_ins": bool,
    "max_table_reservation_size": int,
    "order_preparation_time": int,
    "delivery_radius": (int, float),
}


def validate_opening_hours(hours: dict[str, Any], base: Optional[dict] = None) -> dict[str, dict]:
    """
    Check a day -> {open, close, is_open} mapping. Days that are left out
    keep their hours from ``base`` (the defaults when not given).
    """
    if not isinstance(hours, dict):
        raise ValidationError("Opening hours must be an object keyed by weekday")

    result = {day: dict(value) for day, value in {**DEFAULT_OPENING_HOURS, **(base or {})}.items()}
    for day, value in hours.items():
        key = str(day).lower()
        if key not in WEEKDAYS:
            raise ValidationError(f"Unknown weekday '{day}'")
        if not isinstance(value, dict):
            raise ValidationError(f"Hours for {key} must be an object")

        entry = {**result[key], **value}
        is_open = entry.get("is_open", True)
        if not isinstance(is_open, bool):
            raise ValidationError(f"is_open for {key} must be true or false")
        for field_name in ("open", "close"):
            if not TIME_PATTERN.match(str(entry.get(field_name, ""))):
                raise ValidationError(f"{key} {field_name} time must be HH:MM")
        if is_open and entry["open"] >= entry["close"]:
            raise ValidationError(f"{key} must open before it closes")

        result[key] = {"open": entry["open"], "close": entry["close"], "is_open": is_open}
    return result


def validate_settings(current: Optional[dict], changes: dict[str, Any]) -> dict[str, Any]:
    """Merge ``changes`` onto ``current`` after type and range checks."""
    merged = {**DEFAULT_RESTAURANT_SETTINGS, **(current or {})}
    for key, value in changes.items():
        expected = SETTING_TYPES.get(key)
        if expected is None:
            raise ValidationError(f"Unknown restaurant setting '{key}'")
        if expected is bool:
            if not isinstance(value, bool):
                raise ValidationError(f"Setting '{key}' must be true or false")
        elif isinstance(value, bool) or not isinstance(value, expected):
            raise ValidationError(f"Setting '{key}' must be a number")
        elif value < 0 or (key == "max_table_reservation_size" and value < 1):
            raise ValidationError(f"Setting '{key}' is out of range")
        merged[key] = value
    return merged


class RestaurantRegistry:
    def __init__(self, db: AsyncSession, gate: Optional[AuthorizationGate] = None):
        self.db = db
        self.gate = gate or AuthorizationGate()

    async def _get(self, restaurant_id: int) -> Restaurant:
        restaurant = await self.db.get(Restaurant, restaurant_id)
        if restaurant is None:
            raise NotFoundError(f"Restaurant #{restaurant_id} not found")
        return restaurant

    def _require_settings_access(self, actor: Optional[Principal], restaurant_id: int, action: str) -> None:
        self.gate.require(
            actor,
            required_role=UserRole.RESTAURANT_ADMIN,
            required_permission=Permission.MANAGE_SETTINGS,
            resource_restaurant_id=restaurant_id,
            action=action,
        )

    # =========================================================================
    # READS
    # =========================================================================

    async def get(self, restaurant_id: int, actor: Optional[Principal]) -> Restaurant:
        self.gate.require(actor, resource_restaurant_id=restaurant_id, action="get_restaurant")
        return await self._get(restaurant_id)

    async def list_restaurants(
        self,
        actor: Optional[Principal],
        status: Optional[RestaurantStatus] = None,
    ) -> list[Restaurant]:
        """All restaurants for super admins; staff only see their own."""
        self.gate.require(actor, action="list_restaurants")

        query = select(Restaurant).order_by(Restaurant.name, Restaurant.id)
        if not actor.has_global_access:
            if actor.restaurant_id is None:
                return []
            query = query.where(Restaurant.id == actor.restaurant_id)
        if status is not None:
            query = query.where(Restaurant.status == status)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_public(self, restaurant_id: int) -> Restaurant:
        """Restaurant shown on the customer menu page; active only."""
        restaurant = await self.db.get(Restaurant, restaurant_id)
        if restaurant is None or restaurant.status != RestaurantStatus.ACTIVE:
            raise NotFoundError(f"Restaurant #{restaurant_id} not found")
        return restaurant

    # =========================================================================
    # SUPER ADMIN OPERATIONS
    # =========================================================================

    async def create(self, actor: Optional[Principal], name: str, **profile: Any) -> Restaurant:
        self.gate.require(actor, required_role=UserRole.SUPER_ADMIN, action="create_restaurant")

        name = (name or "").strip()
        if not name:
            raise ValidationError("Restaurant name is required")
        unknown = set(profile) - set(PROFILE_FIELDS) - {"opening_hours", "settings"}
        if unknown:
            raise ValidationError(f"Unknown restaurant fields: {sorted(unknown)}")

        opening_hours = validate_opening_hours(profile.pop("opening_hours", None) or {})
        settings = validate_settings(None, profile.pop("settings", None) or {})

        restaurant = Restaurant(
            name=name,
            opening_hours=opening_hours,
            settings=settings,
            status=RestaurantStatus.ACTIVE,
            **{k: v for k, v in profile.items() if k != "name"},
        )
        self.db.add(restaurant)
        await commit_or_raise(self.db, "create restaurant")

        logger.info(f"Restaurant #{restaurant.id} '{restaurant.name}' created by {actor.user_id}")
        return restaurant

    async def set_status(
        self,
        restaurant_id: int,
        status: RestaurantStatus,
        actor: Optional[Principal],
    ) -> Restaurant:
        self.gate.require(actor, required_role=UserRole.SUPER_ADMIN, action="set_restaurant_status")
        restaurant = await self._get(restaurant_id)

        restaurant.status = RestaurantStatus(status)
        restaurant.updated_at = utcnow()
        await commit_or_raise(self.db, "update restaurant status")

        logger.info(f"Restaurant #{restaurant_id} status -> {restaurant.status.value}")
        return restaurant

    async def delete(self, restaurant_id: int, actor: Optional[Principal]) -> None:
        """Remove a tenant with its menu, tables and orders. Staff must be removed first."""
        self.gate.require(actor, required_role=UserRole.SUPER_ADMIN, action="delete_restaurant")
        restaurant = await self._get(restaurant_id)

        staff = await self.db.execute(
            select(func.count(User.id)).where(User.restaurant_id == restaurant_id)
        )
        if staff.scalar():
            raise ValidationError(
                f"Restaurant #{restaurant_id} still has staff accounts; remove them first"
            )

        try:
            await self.db.execute(delete(Order).where(Order.restaurant_id == restaurant_id))
            await self.db.execute(delete(RestaurantTable).where(RestaurantTable.restaurant_id == restaurant_id))
            await self.db.execute(delete(MenuItem).where(MenuItem.restaurant_id == restaurant_id))
            await self.db.delete(restaurant)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete restaurant #{restaurant_id}: {e}")
            raise PersistenceError("Could not delete restaurant, please retry", restaurant_id=restaurant_id)

        logger.info(f"Restaurant #{restaurant_id} deleted by {actor.user_id}")

    # =========================================================================
    # PROFILE & SETTINGS
    # =========================================================================

    async def update_profile(
        self,
        restaurant_id: int,
        actor: Optional[Principal],
        **changes: Any,
    ) -> Restaurant:
        self._require_settings_access(actor, restaurant_id, "update_restaurant_profile")
        restaurant = await self._get(restaurant_id)

        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown restaurant fields: {sorted(unknown)}")
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Restaurant name cannot be empty")

        for key, value in changes.items():
            setattr(restaurant, key, value.strip() if key == "name" else value)
        restaurant.updated_at = utcnow()
        await commit_or_raise(self.db, "update restaurant")

        logger.info(f"Restaurant #{restaurant_id} profile updated: {sorted(changes)}")
        return restaurant

    async def update_opening_hours(
        self,
        restaurant_id: int,
        hours: dict[str, Any],
        actor: Optional[Principal],
    ) -> Restaurant:
        self._require_settings_access(actor, restaurant_id, "update_opening_hours")
        restaurant = await self._get(restaurant_id)

        restaurant.opening_hours = validate_opening_hours(hours, base=restaurant.opening_hours)
        restaurant.updated_at = utcnow()
        await commit_or_raise(self.db, "update opening hours")
        return restaurant

    async def update_settings(
        self,
        restaurant_id: int,
        changes: dict[str, Any],
        actor: Optional[Principal],
    ) -> Restaurant:
        self._require_settings_access(actor, restaurant_id, "update_restaurant_settings")
        restaurant = await self._get(restaurant_id)

        restaurant.settings = validate_settings(restaurant.settings, changes)
        restaurant.updated_at = utcnow()
        await commit_or_raise(self.db, "update restaurant settings")

        logger.info(f"Restaurant #{restaurant_id} settings updated: {sorted(changes)}")
        return restaurant
