"""
SQLAlchemy Database Models

Tenants (restaurants), their tables and menu items, staff accounts,
dine-in orders and pending phone verification codes.
"""

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    DateTime,
    Text,
    Enum,
    Boolean,
    JSON,
    ForeignKey,
    UniqueConstraint,
)

from restrona.database import Base


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from stores without tz support."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserRole(str, enum.Enum):
    """Staff roles. Customers are anonymous and have no account."""
    SUPER_ADMIN = "super_admin"
    RESTAURANT_ADMIN = "restaurant_admin"
    WAITER = "waiter"


class Permission(str, enum.Enum):
    """Permission tags held in a user's permission set."""
    MANAGE_RESTAURANTS = "manage_restaurants"
    MANAGE_USERS = "manage_users"
    MANAGE_MENUS = "manage_menus"
    MANAGE_TABLES = "manage_tables"
    MANAGE_ORDERS = "manage_orders"
    VIEW_ORDERS = "view_orders"
    UPDATE_ORDER_STATUS = "update_order_status"
    VIEW_ANALYTICS = "view_analytics"
    STAFF_MANAGEMENT = "staff_management"
    MANAGE_SETTINGS = "manage_settings"


DEFAULT_PERMISSIONS: dict[UserRole, list[str]] = {
    UserRole.SUPER_ADMIN: [p.value for p in Permission],
    UserRole.RESTAURANT_ADMIN: [
        Permission.MANAGE_MENUS.value,
        Permission.MANAGE_TABLES.value,
        Permission.MANAGE_ORDERS.value,
        Permission.VIEW_ORDERS.value,
        Permission.UPDATE_ORDER_STATUS.value,
        Permission.VIEW_ANALYTICS.value,
        Permission.STAFF_MANAGEMENT.value,
        Permission.MANAGE_SETTINGS.value,
    ],
    UserRole.WAITER: [
        Permission.VIEW_ORDERS.value,
        Permission.UPDATE_ORDER_STATUS.value,
    ],
}


class RestaurantStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class TableStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


class OrderStatus(str, enum.Enum):
    """Order status workflow (see services.orders.ORDER_TRANSITIONS)."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class OrderType(str, enum.Enum):
    DINE_IN = "dine_in"
    TAKEAWAY = "takeaway"


DEFAULT_OPENING_HOURS = {
    "monday": {"open": "09:00", "close": "22:00", "is_open": True},
    "tuesday": {"open": "09:00", "close": "22:00", "is_open": True},
    "wednesday": {"open": "09:00", "close": "22:00", "is_open": True},
    "thursday": {"open": "09:00", "close": "22:00", "is_open": True},
    "friday": {"open": "09:00", "close": "23:00", "is_open": True},
    "saturday": {"open": "10:00", "close": "23:00", "is_open": True},
    "sunday": {"open": "10:00", "close": "22:00", "is_open": True},
}

DEFAULT_RESTAURANT_SETTINGS = {
    "auto_accept_orders": False,
    "require_table_reservation": False,
    "allow_walk_ins": True,
    "max_table_reservation_size": 8,
    "order_preparation_time": 20,
    "delivery_radius": 5,
}


class Restaurant(Base):
    """
    Tenant record. Owned by super admins, read by staff scoped to it.
    """
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # =========================================================================
    # PROFILE
    # =========================================================================
    name = Column(String(120), nullable=False)
    type = Column(String(50), nullable=True)  # cuisine / venue type
    description = Column(Text, nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(255), nullable=True)
    address = Column(String(255), nullable=True)

    # =========================================================================
    # HOURS & SETTINGS
    # =========================================================================
    opening_hours = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_OPENING_HOURS))
    settings = Column(JSON, nullable=False, default=lambda: dict(DEFAULT_RESTAURANT_SETTINGS))

    status = Column(
        Enum(RestaurantStatus),
        default=RestaurantStatus.ACTIVE,
        nullable=False,
        index=True
    )

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Restaurant #{self.id} - {self.name} - {self.status.value}>"


class User(Base):
    """
    Staff account record. The id is the principal uid issued by the
    identity provider; credentials live only in the provider.
    """
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(20), nullable=True, index=True)

    role = Column(Enum(UserRole), nullable=False, index=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    permissions = Column(JSON, nullable=False, default=list)

    phone_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_super_admin = Column(Boolean, default=False, nullable=False)
    can_access_everything = Column(Boolean, default=False, nullable=False)

    password_updated_at = Column(DateTime(timezone=True), nullable=True)
    password_updated_by = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User {self.id} - {self.role.value} - {self.email}>"


class RestaurantTable(Base):
    """Dining table; its QR code encodes restaurant id + table id."""
    __tablename__ = "dining_tables"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "table_number", name="uq_table_number_per_restaurant"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    table_number = Column(String(20), nullable=False)
    capacity = Column(Integer, nullable=False, default=4)
    status = Column(
        Enum(TableStatus),
        default=TableStatus.AVAILABLE,
        nullable=False,
        index=True
    )
    location = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Table {self.table_number} @ restaurant #{self.restaurant_id} - {self.status.value}>"


class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    category = Column(String(50), nullable=False, default="General", index=True)
    image_url = Column(String(500), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<MenuItem #{self.id} - {self.name} - {self.price}>"


class Order(Base):
    """
    Dine-in order placed from a table's menu page.

    ``status`` is only ever written through the conditional update in
    services.orders; ``items`` is a snapshot of server-side prices at
    submission time.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(40), nullable=False, unique=True, index=True)

    restaurant_id = Column(
        Integer,
        ForeignKey("restaurants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    table_id = Column(
        Integer,
        ForeignKey("dining_tables.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    order_type = Column(
        Enum(OrderType),
        default=OrderType.DINE_IN,
        nullable=False
    )

    # =========================================================================
    # CUSTOMER INFORMATION
    # =========================================================================
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(20), nullable=False, index=True)
    customer_notes = Column(Text, nullable=True)

    # =========================================================================
    # ORDER DETAILS
    # =========================================================================
    items = Column(JSON, nullable=False)  # [{id, name, price, quantity, total}]
    total = Column(Numeric(10, 2), nullable=False)

    status = Column(
        Enum(OrderStatus),
        default=OrderStatus.PENDING,
        nullable=False,
        index=True
    )

    # =========================================================================
    # TIMESTAMPS
    # =========================================================================
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_by = Column(String(64), nullable=True)

    def __repr__(self):
        return f"<Order {self.order_number} - restaurant #{self.restaurant_id} - {self.status.value}>"


class OtpVerification(Base):
    """One outstanding verification code per phone number."""
    __tablename__ = "otp_verifications"

    phone = Column(String(20), primary_key=True)
    code_hash = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    is_used = Column(Boolean, default=False, nullable=False)
    attempts = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<OtpVerification {self.phone} - used={self.is_used}>"
