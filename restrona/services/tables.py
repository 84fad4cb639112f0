"""
Table Registry

Dining tables of a restaurant. Occupancy is also driven by the order
engine: a table becomes occupied when an order is placed at it and is
released when its last active order completes.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from restrona.core.errors import NotFoundError, PersistenceError, ValidationError
from restrona.database import commit_or_raise
from restrona.models import Permission, Restaurant, RestaurantTable, TableStatus, UserRole, utcnow
from restrona.services.authorization import AuthorizationGate, Principal

logger = logging.getLogger(__name__)

TABLE_FIELDS = ("table_number", "capacity", "location", "description")


def _clean_table_fields(changes: dict[str, Any]) -> dict[str, Any]:
    unknown = set(changes) - set(TABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown table fields: {sorted(unknown)}")

    cleaned = dict(changes)
    if "table_number" in cleaned:
        cleaned["table_number"] = str(cleaned["table_number"] or "").strip()
        if not cleaned["table_number"]:
            raise ValidationError("Table number is required")
    if "capacity" in cleaned:
        capacity = cleaned["capacity"]
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ValidationError("Table capacity must be at least 1")
    return cleaned


class TableRegistry:
    def __init__(self, db: AsyncSession, gate: Optional[AuthorizationGate] = None):
        self.db = db
        self.gate = gate or AuthorizationGate()

    def _require_manage(self, actor: Optional[Principal], restaurant_id: int, action: str) -> None:
        self.gate.require(
            actor,
            required_role=UserRole.RESTAURANT_ADMIN,
            required_permission=Permission.MANAGE_TABLES,
            resource_restaurant_id=restaurant_id,
            action=action,
        )

    async def _get_table(self, restaurant_id: int, table_id: int) -> RestaurantTable:
        table = await self.db.get(RestaurantTable, table_id)
        if table is None or table.restaurant_id != restaurant_id:
            raise NotFoundError(f"Table #{table_id} not found in restaurant #{restaurant_id}")
        return table

    async def _ensure_number_free(
        self,
        restaurant_id: int,
        table_number: str,
        exclude_id: Optional[int] = None,
    ) -> None:
        query = select(RestaurantTable.id).where(
            RestaurantTable.restaurant_id == restaurant_id,
            RestaurantTable.table_number == table_number,
        )
        if exclude_id is not None:
            query = query.where(RestaurantTable.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise ValidationError(f"Table number '{table_number}' already exists in this restaurant")

    async def _commit(self, action: str, table_number: Optional[str]) -> None:
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ValidationError(f"Table number '{table_number}' already exists in this restaurant")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError(f"Could not {action}, please retry")

    async def create_table(
        self,
        restaurant_id: int,
        actor: Optional[Principal],
        table_number: str,
        capacity: int = 4,
        **fields: Any,
    ) -> RestaurantTable:
        self._require_manage(actor, restaurant_id, "create_table")
        if await self.db.get(Restaurant, restaurant_id) is None:
            raise NotFoundError(f"Restaurant #{restaurant_id} not found")

        cleaned = _clean_table_fields({"table_number": table_number, "capacity": capacity, **fields})
        await self._ensure_number_free(restaurant_id, cleaned["table_number"])

        table = RestaurantTable(restaurant_id=restaurant_id, status=TableStatus.AVAILABLE, **cleaned)
        self.db.add(table)
        await self._commit("create table", cleaned["table_number"])

        logger.info(f"Table {table.table_number} (#{table.id}) added to restaurant #{restaurant_id}")
        return table

    async def update_table(
        self,
        restaurant_id: int,
        table_id: int,
        actor: Optional[Principal],
        **changes: Any,
    ) -> RestaurantTable:
        self._require_manage(actor, restaurant_id, "update_table")
        table = await self._get_table(restaurant_id, table_id)

        cleaned = _clean_table_fields(changes)
        if "table_number" in cleaned:
            await self._ensure_number_free(restaurant_id, cleaned["table_number"], exclude_id=table_id)

        for key, value in cleaned.items():
            setattr(table, key, value)
        table.updated_at = utcnow()
        await self._commit("update table", cleaned.get("table_number"))
        return table

    async def set_status(
        self,
        restaurant_id: int,
        table_id: int,
        status: TableStatus,
        actor: Optional[Principal],
    ) -> RestaurantTable:
        self._require_manage(actor, restaurant_id, "set_table_status")
        table = await self._get_table(restaurant_id, table_id)

        table.status = TableStatus(status)
        table.updated_at = utcnow()
        await commit_or_raise(self.db, "update table status")

        logger.info(f"Table #{table_id} status -> {table.status.value}")
        return table

    async def delete_table(self, restaurant_id: int, table_id: int, actor: Optional[Principal]) -> None:
        self._require_manage(actor, restaurant_id, "delete_table")
        table = await self._get_table(restaurant_id, table_id)

        if table.status == TableStatus.OCCUPIED:
            raise ValidationError(f"Table {table.table_number} is occupied and cannot be deleted")

        await self.db.delete(table)
        await commit_or_raise(self.db, "delete table")
        logger.info(f"Table #{table_id} deleted from restaurant #{restaurant_id}")

    async def list_tables(self, restaurant_id: int, actor: Optional[Principal]) -> list[RestaurantTable]:
        """Any staff member of the restaurant may read its tables."""
        self.gate.require(actor, resource_restaurant_id=restaurant_id, action="list_tables")

        result = await self.db.execute(
            select(RestaurantTable)
            .where(RestaurantTable.restaurant_id == restaurant_id)
            .order_by(RestaurantTable.table_number, RestaurantTable.id)
        )
        return list(result.scalars().all())
