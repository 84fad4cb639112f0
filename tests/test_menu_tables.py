from decimal import Decimal

import pytest

from restrona.core.errors import AuthorizationError, DenyReason, NotFoundError, ValidationError
from restrona.models import RestaurantStatus, TableStatus
from restrona.services.menu import MenuCatalog
from restrona.services.orders import CustomerInfo, OrderLifecycleEngine
from restrona.services.tables import TableRegistry


@pytest.fixture
def menu(db):
    return MenuCatalog(db)


@pytest.fixture
def tables(db):
    return TableRegistry(db)


# =============================================================================
# MENU
# =============================================================================

async def test_public_menu_hides_unavailable_items(menu, seed):
    public = await menu.public_menu(seed.restaurant.id, table_id=seed.table.id)

    assert [item.name for item in public.items] == ["Lasagna", "Bruschetta"]
    assert public.categories == ["Mains", "Starters"]
    assert public.table.table_number == "T1"
    assert public.restaurant.name == "Trattoria Roma"


async def test_public_menu_rejects_table_from_another_restaurant(menu, seed):
    with pytest.raises(NotFoundError):
        await menu.public_menu(seed.restaurant.id, table_id=seed.other_table.id)


async def test_public_menu_of_inactive_restaurant_is_not_found(menu, seed, db):
    seed.restaurant.status = RestaurantStatus.INACTIVE
    await db.commit()
    with pytest.raises(NotFoundError):
        await menu.public_menu(seed.restaurant.id)


async def test_admin_manages_items(menu, seed):
    item = await menu.create_item(
        seed.restaurant.id, seed.admin_principal, " Tiramisu ", "45.5", category="Desserts"
    )
    assert item.name == "Tiramisu"
    assert item.price == Decimal("45.50")
    assert item.is_available is True

    await menu.set_availability(seed.restaurant.id, item.id, False, seed.admin_principal)
    public = await menu.public_menu(seed.restaurant.id)
    assert "Tiramisu" not in [i.name for i in public.items]

    updated = await menu.update_item(seed.restaurant.id, item.id, seed.admin_principal, price=50)
    assert updated.price == Decimal("50.00")

    await menu.delete_item(seed.restaurant.id, item.id, seed.admin_principal)
    with pytest.raises(NotFoundError):
        await menu.update_item(seed.restaurant.id, item.id, seed.admin_principal, price=10)


async def test_staff_list_includes_unavailable_items(menu, seed):
    items = await menu.list_items(seed.restaurant.id, seed.waiter_principal)
    assert {i.name for i in items} == {"Lasagna", "Bruschetta", "Truffle Risotto"}

    mains = await menu.list_items(seed.restaurant.id, seed.waiter_principal, category="Mains")
    assert [i.name for i in mains] == ["Lasagna", "Truffle Risotto"]


@pytest.mark.parametrize(
    "fields",
    [
        {"name": "", "price": 10},
        {"name": "Soup", "price": -1},
        {"name": "Soup", "price": "free"},
        {"name": "Soup", "price": 10, "calories": 300},
    ],
)
async def test_invalid_items_rejected(menu, seed, fields):
    with pytest.raises(ValidationError):
        await menu.create_item(seed.restaurant.id, seed.admin_principal, **fields)


async def test_waiter_cannot_edit_menu(menu, seed):
    with pytest.raises(AuthorizationError) as exc:
        await menu.create_item(seed.restaurant.id, seed.waiter_principal, "Soup", 10)
    assert exc.value.reason == DenyReason.WRONG_ROLE


async def test_admin_cannot_edit_another_restaurants_menu(menu, seed):
    with pytest.raises(AuthorizationError) as exc:
        await menu.update_item(seed.restaurant.id, seed.item_a.id, seed.other_admin_principal, price=1)
    assert exc.value.reason == DenyReason.TENANT_MISMATCH


async def test_item_lookup_is_tenant_scoped(menu, seed):
    with pytest.raises(NotFoundError):
        await menu.update_item(seed.other_restaurant.id, seed.item_a.id, seed.super_admin_principal, price=1)


# =============================================================================
# TABLES
# =============================================================================

async def test_create_and_list_tables(tables, seed):
    table = await tables.create_table(seed.restaurant.id, seed.admin_principal, "T3", capacity=6, location="Patio")
    assert table.status == TableStatus.AVAILABLE

    listed = await tables.list_tables(seed.restaurant.id, seed.waiter_principal)
    assert [t.table_number for t in listed] == ["T1", "T2", "T3"]


async def test_duplicate_table_number_rejected(tables, seed):
    with pytest.raises(ValidationError):
        await tables.create_table(seed.restaurant.id, seed.admin_principal, "T1")
    with pytest.raises(ValidationError):
        await tables.update_table(seed.restaurant.id, seed.second_table.id, seed.admin_principal, table_number="T1")


async def test_same_number_allowed_in_another_restaurant(tables, seed):
    table = await tables.create_table(seed.other_restaurant.id, seed.other_admin_principal, "T1")
    assert table.restaurant_id == seed.other_restaurant.id


@pytest.mark.parametrize("capacity", [0, -3, True, "4"])
async def test_invalid_capacity_rejected(tables, seed, capacity):
    with pytest.raises(ValidationError):
        await tables.create_table(seed.restaurant.id, seed.admin_principal, "T9", capacity=capacity)


async def test_occupied_table_cannot_be_deleted(tables, seed, db):
    engine = OrderLifecycleEngine(db)
    await engine.create_order(
        seed.restaurant.id, seed.table.id, CustomerInfo("Jane", "5551234567"), [(seed.item_a.id, 1)]
    )

    with pytest.raises(ValidationError):
        await tables.delete_table(seed.restaurant.id, seed.table.id, seed.admin_principal)

    await tables.delete_table(seed.restaurant.id, seed.second_table.id, seed.admin_principal)
    listed = await tables.list_tables(seed.restaurant.id, seed.admin_principal)
    assert [t.table_number for t in listed] == ["T1"]


async def test_set_table_status(tables, seed):
    table = await tables.set_status(seed.restaurant.id, seed.table.id, "maintenance", seed.admin_principal)
    assert table.status == TableStatus.MAINTENANCE


async def test_waiter_cannot_manage_tables(tables, seed):
    with pytest.raises(AuthorizationError) as exc:
        await tables.create_table(seed.restaurant.id, seed.waiter_principal, "T5")
    assert exc.value.reason == DenyReason.WRONG_ROLE


async def test_tables_of_another_restaurant_are_hidden(tables, seed):
    with pytest.raises(AuthorizationError) as exc:
        await tables.list_tables(seed.other_restaurant.id, seed.waiter_principal)
    assert exc.value.reason == DenyReason.TENANT_MISMATCH
