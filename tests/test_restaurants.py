import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.sql.dml import Delete

from restrona.core.errors import (
    AuthorizationError,
    DenyReason,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from restrona.models import DEFAULT_OPENING_HOURS, DEFAULT_RESTAURANT_SETTINGS, Restaurant, RestaurantStatus
from restrona.services.restaurants import RestaurantRegistry, validate_opening_hours, validate_settings


@pytest.fixture
def registry(db):
    return RestaurantRegistry(db)


# =============================================================================
# VALIDATION
# =============================================================================

def test_opening_hours_merge_over_defaults():
    hours = validate_opening_hours({"Friday": {"is_open": False}, "monday": {"open": "11:00"}})

    assert hours["friday"] == {**DEFAULT_OPENING_HOURS["friday"], "is_open": False}
    assert hours["monday"]["open"] == "11:00"
    assert hours["monday"]["close"] == DEFAULT_OPENING_HOURS["monday"]["close"]
    assert hours["sunday"] == DEFAULT_OPENING_HOURS["sunday"]


@pytest.mark.parametrize(
    "hours",
    [
        {"funday": {"open": "09:00"}},
        {"monday": "09:00-17:00"},
        {"monday": {"open": "9am"}},
        {"monday": {"open": "23:00", "close": "09:00"}},
        {"monday": {"close": "24:00"}},
        {"monday": {"is_open": "yes"}},
    ],
)
def test_invalid_opening_hours(hours):
    with pytest.raises(ValidationError):
        validate_opening_hours(hours)


def test_closed_day_may_have_any_order_of_times():
    hours = validate_opening_hours({"sunday": {"open": "22:00", "close": "10:00", "is_open": False}})
    assert hours["sunday"]["is_open"] is False


def test_settings_merge():
    merged = validate_settings({"allow_walk_ins": False}, {"order_preparation_time": 30, "delivery_radius": 2.5})

    assert merged["allow_walk_ins"] is False
    assert merged["order_preparation_time"] == 30
    assert merged["delivery_radius"] == 2.5
    assert merged["auto_accept_orders"] == DEFAULT_RESTAURANT_SETTINGS["auto_accept_orders"]


@pytest.mark.parametrize(
    "changes",
    [
        {"loyalty_points": True},
        {"auto_accept_orders": "yes"},
        {"order_preparation_time": True},
        {"order_preparation_time": -5},
        {"max_table_reservation_size": 0},
        {"delivery_radius": "far"},
    ],
)
def test_invalid_settings(changes):
    with pytest.raises(ValidationError):
        validate_settings(None, changes)


# =============================================================================
# REGISTRY
# =============================================================================

async def test_only_super_admin_creates_restaurants(registry, seed):
    with pytest.raises(AuthorizationError) as exc:
        await registry.create(seed.admin_principal, "Taco Stand")
    assert exc.value.reason == DenyReason.WRONG_ROLE

    restaurant = await registry.create(
        seed.super_admin_principal,
        "  Taco Stand ",
        type="Mexican",
        settings={"auto_accept_orders": True},
    )
    assert restaurant.name == "Taco Stand"
    assert restaurant.status == RestaurantStatus.ACTIVE
    assert restaurant.settings["auto_accept_orders"] is True
    assert restaurant.opening_hours == DEFAULT_OPENING_HOURS


async def test_create_rejects_blank_name_and_unknown_fields(registry, seed):
    with pytest.raises(ValidationError):
        await registry.create(seed.super_admin_principal, " ")
    with pytest.raises(ValidationError):
        await registry.create(seed.super_admin_principal, "Taco Stand", owner="someone")


async def test_listing_is_scoped_to_own_restaurant(registry, seed):
    everything = await registry.list_restaurants(seed.super_admin_principal)
    assert [r.name for r in everything] == ["Sushi Bar", "Trattoria Roma"]

    own = await registry.list_restaurants(seed.waiter_principal)
    assert [r.id for r in own] == [seed.restaurant.id]


async def test_get_other_tenant_denied(registry, seed):
    with pytest.raises(AuthorizationError) as exc:
        await registry.get(seed.other_restaurant.id, seed.admin_principal)
    assert exc.value.reason == DenyReason.TENANT_MISMATCH


async def test_admin_updates_own_profile_and_settings(registry, seed):
    restaurant = await registry.update_profile(seed.restaurant.id, seed.admin_principal, phone="+390612345")
    assert restaurant.phone == "+390612345"

    restaurant = await registry.update_settings(
        seed.restaurant.id, {"auto_accept_orders": True}, seed.admin_principal
    )
    assert restaurant.settings["auto_accept_orders"] is True

    restaurant = await registry.update_opening_hours(
        seed.restaurant.id, {"monday": {"is_open": False}}, seed.admin_principal
    )
    assert restaurant.opening_hours["monday"]["is_open"] is False
    assert restaurant.opening_hours["tuesday"]["is_open"] is True


async def test_waiter_cannot_change_settings(registry, seed):
    with pytest.raises(AuthorizationError) as exc:
        await registry.update_settings(seed.restaurant.id, {"allow_walk_ins": False}, seed.waiter_principal)
    assert exc.value.reason == DenyReason.WRONG_ROLE


async def test_admin_cannot_change_other_restaurant(registry, seed):
    with pytest.raises(AuthorizationError) as exc:
        await registry.update_profile(seed.other_restaurant.id, seed.admin_principal, name="Mine now")
    assert exc.value.reason == DenyReason.TENANT_MISMATCH


async def test_suspend_restaurant(registry, seed):
    with pytest.raises(AuthorizationError):
        await registry.set_status(seed.restaurant.id, RestaurantStatus.SUSPENDED, seed.admin_principal)

    restaurant = await registry.set_status(seed.restaurant.id, "suspended", seed.super_admin_principal)
    assert restaurant.status == RestaurantStatus.SUSPENDED
    with pytest.raises(NotFoundError):
        await registry.get_public(seed.restaurant.id)


async def test_delete_requires_staff_removed_first(registry, seed):
    with pytest.raises(ValidationError):
        await registry.delete(seed.other_restaurant.id, seed.super_admin_principal)

    empty = await registry.create(seed.super_admin_principal, "Pop-up Kitchen")
    await registry.delete(empty.id, seed.super_admin_principal)
    with pytest.raises(NotFoundError):
        await registry.get(empty.id, seed.super_admin_principal)


async def test_delete_store_failure_keeps_restaurant(registry, seed, db, session_maker, monkeypatch):
    empty = await registry.create(seed.super_admin_principal, "Pop-up Kitchen")
    empty_id = empty.id
    execute = db.execute

    async def failing_execute(statement, *args, **kwargs):
        if isinstance(statement, Delete):
            raise OperationalError("DELETE", {}, Exception("database is locked"))
        return await execute(statement, *args, **kwargs)

    monkeypatch.setattr(db, "execute", failing_execute)

    with pytest.raises(PersistenceError):
        await registry.delete(empty_id, seed.super_admin_principal)

    async with session_maker() as session:
        assert await session.get(Restaurant, empty_id) is not None
