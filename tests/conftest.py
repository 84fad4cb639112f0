"""
Shared fixtures.

Every test gets a fresh SQLite database file and in-process providers
(mock identity, in-memory event bus, mock SMS). The environment is pinned
to development before anything from ``restrona`` is imported.
"""

import os

os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DEBUG"] = "false"
os.environ["OTP_EXPOSE_CODE"] = "true"
os.environ["REQUIRE_STAFF_PHONE_VERIFICATION"] = "false"

from dataclasses import dataclass
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from restrona.database import build_engine, get_db, init_db
from restrona.models import (
    DEFAULT_PERMISSIONS,
    MenuItem,
    Restaurant,
    RestaurantStatus,
    RestaurantTable,
    User,
    UserRole,
)
from restrona.services.authorization import Principal
from restrona.services.events import InMemoryEventBus
from restrona.services.identity import MockIdentityProvider
from restrona.services.notifications import MockNotificationService

PASSWORD = "secret-pass"


@dataclass
class Seed:
    """Two restaurants with staff, tables and menus."""
    restaurant: Restaurant
    other_restaurant: Restaurant
    table: RestaurantTable
    second_table: RestaurantTable
    other_table: RestaurantTable
    item_a: MenuItem
    item_b: MenuItem
    unavailable_item: MenuItem
    super_admin: User
    admin: User
    waiter: User
    other_admin: User

    @property
    def super_admin_principal(self) -> Principal:
        return Principal.from_user(self.super_admin)

    @property
    def admin_principal(self) -> Principal:
        return Principal.from_user(self.admin)

    @property
    def waiter_principal(self) -> Principal:
        return Principal.from_user(self.waiter)

    @property
    def other_admin_principal(self) -> Principal:
        return Principal.from_user(self.other_admin)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'restrona-test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def identity():
    return MockIdentityProvider(secret_key="test-secret", token_ttl_seconds=600)


@pytest.fixture
def events():
    return InMemoryEventBus()


@pytest.fixture
def notifications():
    return MockNotificationService()


async def _staff(
    db: AsyncSession,
    identity: MockIdentityProvider,
    email: str,
    role: UserRole,
    restaurant_id=None,
    phone=None,
) -> User:
    uid = await identity.create_principal(email, PASSWORD, phone=phone)
    user = User(
        id=uid,
        name=email.split("@")[0].title(),
        email=email,
        phone=phone,
        role=role,
        restaurant_id=restaurant_id,
        permissions=list(DEFAULT_PERMISSIONS[role]),
        is_active=True,
        is_super_admin=role == UserRole.SUPER_ADMIN,
        can_access_everything=role == UserRole.SUPER_ADMIN,
    )
    db.add(user)
    return user


@pytest.fixture
async def seed(db, identity) -> Seed:
    restaurant = Restaurant(name="Trattoria Roma", type="Italian", status=RestaurantStatus.ACTIVE)
    other = Restaurant(name="Sushi Bar", type="Japanese", status=RestaurantStatus.ACTIVE)
    db.add_all([restaurant, other])
    await db.flush()

    table = RestaurantTable(restaurant_id=restaurant.id, table_number="T1", capacity=4)
    second_table = RestaurantTable(restaurant_id=restaurant.id, table_number="T2", capacity=2)
    other_table = RestaurantTable(restaurant_id=other.id, table_number="S1", capacity=4)
    item_a = MenuItem(restaurant_id=restaurant.id, name="Lasagna", price=Decimal("120.00"), category="Mains")
    item_b = MenuItem(restaurant_id=restaurant.id, name="Bruschetta", price=Decimal("80.00"), category="Starters")
    unavailable = MenuItem(
        restaurant_id=restaurant.id,
        name="Truffle Risotto",
        price=Decimal("200.00"),
        category="Mains",
        is_available=False,
    )
    db.add_all([table, second_table, other_table, item_a, item_b, unavailable])

    super_admin = await _staff(db, identity, "owner@restrona.test", UserRole.SUPER_ADMIN)
    admin = await _staff(db, identity, "admin@roma.test", UserRole.RESTAURANT_ADMIN, restaurant.id)
    waiter = await _staff(db, identity, "waiter@roma.test", UserRole.WAITER, restaurant.id, phone="+15550001111")
    other_admin = await _staff(db, identity, "admin@sushi.test", UserRole.RESTAURANT_ADMIN, other.id)

    await db.commit()

    return Seed(
        restaurant=restaurant,
        other_restaurant=other,
        table=table,
        second_table=second_table,
        other_table=other_table,
        item_a=item_a,
        item_b=item_b,
        unavailable_item=unavailable,
        super_admin=super_admin,
        admin=admin,
        waiter=waiter,
        other_admin=other_admin,
    )


@pytest.fixture
async def client(session_maker, identity, events, notifications):
    from restrona.api.deps import get_events, get_identity, get_notifications
    from restrona.main import app

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity] = lambda: identity
    app.dependency_overrides[get_events] = lambda: events
    app.dependency_overrides[get_notifications] = lambda: notifications

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(identity):
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {identity.issue_token(user.id, user.email)}"}
    return _headers
