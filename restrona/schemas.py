"""
Pydantic Schemas for Request/Response Validation

Money is handled as Decimal inside the services and rendered as float in
responses. Order requests carry item ids and quantities only; any price a
client sends is ignored.
"""

import re
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

from restrona.models import (
    OrderStatus,
    OrderType,
    RestaurantStatus,
    TableStatus,
    UserRole,
)
from restrona.services.orders import next_statuses


TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def _check_phone(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    cleaned = re.sub(r'[^\d]', '', v)
    if len(cleaned) < 10:
        raise ValueError('Phone number must have at least 10 digits')
    return v


# =============================================================================
# AUTH & OTP
# =============================================================================

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, examples=["admin@restrona.local"])
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """Staff account as shown to clients."""
    id: str
    name: str
    email: str
    phone: Optional[str]
    role: UserRole
    restaurant_id: Optional[int]
    permissions: List[str]
    phone_verified: bool
    is_active: bool
    is_super_admin: bool
    password_updated_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProfileResponse(BaseModel):
    user: UserResponse
    capabilities: List[str]


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
    capabilities: List[str]


class OtpSendRequest(BaseModel):
    phone: str = Field(..., min_length=10, max_length=20, examples=["+15551234567"])


class OtpSendResponse(BaseModel):
    success: bool = True
    phone: str
    expires_at: datetime
    code: Optional[str] = None


class OtpVerifyRequest(BaseModel):
    phone: str = Field(..., min_length=10, max_length=20)
    code: str = Field(..., min_length=4, max_length=10)


class OtpVerifyResponse(BaseModel):
    success: bool = True
    verified: bool


# =============================================================================
# RESTAURANTS
# =============================================================================

class DayHours(BaseModel):
    open: str = Field(..., pattern=TIME_PATTERN, examples=["09:00"])
    close: str = Field(..., pattern=TIME_PATTERN, examples=["22:00"])
    is_open: bool = True


class RestaurantSettingsUpdate(BaseModel):
    """Operational settings; omitted fields keep their stored value."""
    auto_accept_orders: Optional[bool] = None
    require_table_reservation: Optional[bool] = None
    allow_walk_ins: Optional[bool] = None
    max_table_reservation_size: Optional[int] = Field(None, ge=1)
    order_preparation_time: Optional[int] = Field(None, ge=0)
    delivery_radius: Optional[float] = Field(None, ge=0)


class RestaurantProfile(BaseModel):
    type: Optional[str] = Field(None, max_length=50, examples=["Italian"])
    description: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)
    email: Optional[str] = Field(None, max_length=255)
    website: Optional[str] = Field(None, max_length=255)
    address: Optional[str] = Field(None, max_length=255)

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class RestaurantCreate(RestaurantProfile):
    name: str = Field(..., min_length=1, max_length=120, examples=["Trattoria Roma"])
    opening_hours: Optional[dict[str, DayHours]] = None
    settings: Optional[RestaurantSettingsUpdate] = None


class RestaurantUpdate(RestaurantProfile):
    name: Optional[str] = Field(None, min_length=1, max_length=120)


class RestaurantStatusUpdate(BaseModel):
    status: RestaurantStatus


class RestaurantResponse(BaseModel):
    id: int
    name: str
    type: Optional[str]
    description: Optional[str]
    phone: Optional[str]
    email: Optional[str]
    website: Optional[str]
    address: Optional[str]
    opening_hours: dict
    settings: dict
    status: RestaurantStatus
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class PublicRestaurantResponse(BaseModel):
    id: int
    name: str
    type: Optional[str]
    description: Optional[str]
    phone: Optional[str]
    address: Optional[str]
    opening_hours: dict

    class Config:
        from_attributes = True


# =============================================================================
# MENU
# =============================================================================

class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Pizza Margherita"])
    description: Optional[str] = None
    price: float = Field(..., ge=0, examples=[12.5])
    category: str = Field(default="General", max_length=50)
    image_url: Optional[str] = Field(None, max_length=500)
    is_available: bool = True


class MenuItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = Field(None, max_length=50)
    image_url: Optional[str] = Field(None, max_length=500)
    is_available: Optional[bool] = None


class AvailabilityUpdate(BaseModel):
    is_available: bool


class MenuItemResponse(BaseModel):
    id: int
    restaurant_id: int
    name: str
    description: Optional[str]
    price: float
    category: str
    image_url: Optional[str]
    is_available: bool

    class Config:
        from_attributes = True


# =============================================================================
# TABLES
# =============================================================================

class TableCreate(BaseModel):
    table_number: str = Field(..., min_length=1, max_length=20, examples=["T1"])
    capacity: int = Field(default=4, ge=1, le=100)
    location: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


class TableUpdate(BaseModel):
    table_number: Optional[str] = Field(None, min_length=1, max_length=20)
    capacity: Optional[int] = Field(None, ge=1, le=100)
    location: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


class TableStatusUpdate(BaseModel):
    status: TableStatus


class TableResponse(BaseModel):
    id: int
    restaurant_id: int
    table_number: str
    capacity: int
    status: TableStatus
    location: Optional[str]
    description: Optional[str]

    class Config:
        from_attributes = True


class PublicMenuResponse(BaseModel):
    """Customer menu page reached from a table's QR code."""
    restaurant: PublicRestaurantResponse
    table_id: Optional[int] = None
    table_number: Optional[str] = None
    categories: List[str]
    items: List[MenuItemResponse]


# =============================================================================
# ORDERS
# =============================================================================

class OrderLineRequest(BaseModel):
    menu_item_id: int = Field(..., ge=1)
    quantity: int = Field(..., ge=1, le=99, examples=[2])


class OrderCreate(BaseModel):
    """Request schema for submitting a customer order."""
    table_id: Optional[int] = None
    order_type: OrderType = OrderType.DINE_IN
    customer_name: str = Field(..., min_length=1, max_length=100, examples=["Jane Doe"])
    customer_phone: str = Field(..., min_length=10, max_length=20, examples=["555-123-4567"])
    customer_notes: Optional[str] = Field(None, max_length=500)
    items: List[OrderLineRequest] = Field(..., min_length=1)

    @field_validator('customer_phone')
    @classmethod
    def validate_phone(cls, v: str) -> str:
        return _check_phone(v)


class OrderCreateResponse(BaseModel):
    success: bool = True
    message: str = "Order placed successfully!"
    order_id: int
    order_number: str
    total: float
    status: OrderStatus


class OrderLineResponse(BaseModel):
    id: int
    name: str
    price: float
    quantity: int
    total: float


class OrderResponse(BaseModel):
    """Response schema for a single order."""
    id: int
    order_number: str
    restaurant_id: int
    table_id: Optional[int]
    order_type: OrderType
    customer_name: str
    customer_phone: str
    customer_notes: Optional[str]
    items: List[OrderLineResponse]
    total: float
    status: OrderStatus
    next_statuses: List[str] = []
    created_at: datetime
    updated_at: Optional[datetime]
    updated_by: Optional[str]

    class Config:
        from_attributes = True

    @classmethod
    def from_order(cls, order) -> "OrderResponse":
        response = cls.model_validate(order)
        response.next_statuses = next_statuses(order.status)
        return response


class OrderListResponse(BaseModel):
    total: int
    orders: List[OrderResponse]


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., examples=["confirmed"])
    expected_status: Optional[str] = Field(
        None,
        description="Status the client last saw; a stale value is rejected with 409",
    )


class CancelRequest(BaseModel):
    expected_status: Optional[str] = None


class StatusChangeResponse(BaseModel):
    order_id: int
    status: OrderStatus
    updated_at: datetime
    changed: bool


# =============================================================================
# USERS
# =============================================================================

class UserCreate(BaseModel):
    email: str = Field(..., min_length=3, max_length=255, examples=["waiter@restrona.local"])
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.WAITER
    restaurant_id: Optional[int] = None
    phone: Optional[str] = Field(None, max_length=20)
    permissions: Optional[List[str]] = None
    otp_code: Optional[str] = Field(None, max_length=10)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not re.match(r'^[\w\.\+-]+@[\w\.-]+\.\w+$', v):
            raise ValueError('Invalid email format')
        return v.lower()

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v: Optional[str]) -> Optional[str]:
        return _check_phone(v)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    role: Optional[UserRole] = None
    permissions: Optional[List[str]] = None
    is_active: Optional[bool] = None


class PasswordUpdate(BaseModel):
    new_password: str = Field(..., min_length=6)


class UserListResponse(BaseModel):
    total: int
    users: List[UserResponse]


# =============================================================================
# ANALYTICS
# =============================================================================

class RestaurantAnalyticsResponse(BaseModel):
    restaurant_id: int
    total_orders: int
    orders_by_status: dict[str, int]
    active_orders: int
    revenue: float
    today_revenue: float
    average_order_value: float
    tables_total: int
    tables_occupied: int
    menu_items: int

    class Config:
        from_attributes = True


class PlatformAnalyticsResponse(BaseModel):
    restaurants_by_status: dict[str, int]
    users_by_role: dict[str, int]
    total_orders: int
    revenue: float

    class Config:
        from_attributes = True


# =============================================================================
# MISC
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    event_bus: str
    identity_provider: str
    notification_service: str
    timestamp: datetime
