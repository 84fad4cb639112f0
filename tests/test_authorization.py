import pytest

from restrona.core.errors import AuthorizationError, DenyReason
from restrona.models import Permission, UserRole
from restrona.services.authorization import AuthorizationGate, PermissionMatch, Principal


def make_principal(role=UserRole.WAITER, restaurant_id=1, permissions=(), **kwargs) -> Principal:
    return Principal(
        user_id=f"{role.value}-{restaurant_id}",
        role=role,
        restaurant_id=restaurant_id,
        permissions=frozenset(p.value if isinstance(p, Permission) else p for p in permissions),
        **kwargs,
    )


@pytest.fixture
def gate():
    return AuthorizationGate()


@pytest.fixture
def waiter():
    return make_principal(permissions=[Permission.VIEW_ORDERS, Permission.UPDATE_ORDER_STATUS])


def test_missing_principal_is_unauthenticated(gate):
    decision = gate.authorize(None, required_permission=Permission.VIEW_ORDERS)
    assert not decision
    assert decision.reason == DenyReason.UNAUTHENTICATED


def test_inactive_principal_is_unauthenticated(gate):
    principal = make_principal(permissions=[Permission.VIEW_ORDERS], is_active=False)
    assert gate.authorize(principal).reason == DenyReason.UNAUTHENTICATED


def test_super_admin_short_circuits_every_check(gate):
    admin = make_principal(UserRole.SUPER_ADMIN, restaurant_id=None, is_super_admin=True)
    decision = gate.authorize(
        admin,
        required_role=UserRole.WAITER,
        required_permission=Permission.MANAGE_MENUS,
        resource_restaurant_id=42,
    )
    assert decision.allowed


def test_can_access_everything_flag_grants_global_access(gate):
    principal = make_principal(UserRole.RESTAURANT_ADMIN, restaurant_id=1, can_access_everything=True)
    assert gate.authorize(principal, resource_restaurant_id=2, required_permission=Permission.MANAGE_USERS)


def test_tenant_mismatch_is_checked_before_role(gate, waiter):
    decision = gate.authorize(
        waiter,
        required_role=UserRole.RESTAURANT_ADMIN,
        resource_restaurant_id=2,
    )
    assert decision.reason == DenyReason.TENANT_MISMATCH


def test_wrong_role_is_checked_before_permissions(gate, waiter):
    decision = gate.authorize(
        waiter,
        required_role=UserRole.RESTAURANT_ADMIN,
        required_permission=Permission.MANAGE_MENUS,
        resource_restaurant_id=1,
    )
    assert decision.reason == DenyReason.WRONG_ROLE


def test_any_of_several_roles(gate, waiter):
    decision = gate.authorize(
        waiter,
        required_role=(UserRole.RESTAURANT_ADMIN, UserRole.WAITER),
        resource_restaurant_id=1,
    )
    assert decision.allowed


def test_missing_permission(gate, waiter):
    decision = gate.authorize(waiter, required_permission=Permission.MANAGE_ORDERS, resource_restaurant_id=1)
    assert decision.reason == DenyReason.MISSING_PERMISSION


@pytest.mark.parametrize(
    "match, required, allowed",
    [
        (PermissionMatch.ANY, [Permission.MANAGE_ORDERS, Permission.UPDATE_ORDER_STATUS], True),
        (PermissionMatch.ALL, [Permission.MANAGE_ORDERS, Permission.UPDATE_ORDER_STATUS], False),
        (PermissionMatch.ALL, [Permission.VIEW_ORDERS, Permission.UPDATE_ORDER_STATUS], True),
        (PermissionMatch.ONE, [Permission.VIEW_ORDERS], True),
        (PermissionMatch.ONE, [Permission.MANAGE_ORDERS, Permission.VIEW_ORDERS], False),
    ],
)
def test_permission_match_modes(gate, waiter, match, required, allowed):
    assert gate.authorize(waiter, required_permission=required, match=match).allowed is allowed


def test_permission_checks_accept_plain_tags(gate, waiter):
    assert gate.has_permission(waiter, "view_orders")
    assert not gate.has_permission(waiter, "manage_users")
    assert gate.has_any_permission(waiter, ["manage_users", "view_orders"])
    assert not gate.has_all_permissions(waiter, ["manage_users", "view_orders"])
    assert not gate.has_permission(None, "view_orders")


def test_require_raises_with_reason_and_status(gate, waiter):
    with pytest.raises(AuthorizationError) as exc:
        gate.require(waiter, required_permission=Permission.MANAGE_MENUS, action="create_menu_item")
    assert exc.value.reason == DenyReason.MISSING_PERMISSION
    assert exc.value.status_code == 403

    with pytest.raises(AuthorizationError) as exc:
        gate.require(None)
    assert exc.value.status_code == 401


def test_require_returns_principal_when_allowed(gate, waiter):
    assert gate.require(waiter, required_permission=Permission.VIEW_ORDERS) is waiter


def test_capabilities(gate, waiter):
    assert gate.capabilities(waiter) == ["update_order_status", "view_orders"]
    assert gate.capabilities(None) == []

    admin = make_principal(UserRole.SUPER_ADMIN, restaurant_id=None, is_super_admin=True)
    assert gate.capabilities(admin) == sorted(p.value for p in Permission)


def test_unknown_tags_are_not_capabilities(gate):
    principal = make_principal(permissions=["view_orders", "legacy_flag"])
    assert gate.capabilities(principal) == ["view_orders"]
