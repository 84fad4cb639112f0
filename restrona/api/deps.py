"""
Request Dependencies

Every staff request resolves its caller once (bearer token -> Principal)
and carries it, the session and the provider instances in a
RequestContext. Services are built from the context; nothing is looked up
from module-level state inside a handler.
"""

from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from restrona.core.errors import AuthorizationError, DenyReason
from restrona.database import get_db
from restrona.services.analytics import AnalyticsService
from restrona.services.authorization import AuthorizationGate, Principal
from restrona.services.events import BaseEventBus, get_event_bus
from restrona.services.identity import BaseIdentityProvider, get_identity_provider
from restrona.services.menu import MenuCatalog
from restrona.services.notifications import BaseNotificationService, get_notification_service
from restrona.services.orders import OrderLifecycleEngine
from restrona.services.otp import OtpService
from restrona.services.restaurants import RestaurantRegistry
from restrona.services.staff import StaffService
from restrona.services.tables import TableRegistry

security = HTTPBearer(auto_error=False)


# =============================================================================
# PROVIDERS (overridable in tests)
# =============================================================================

def get_identity() -> BaseIdentityProvider:
    return get_identity_provider()


def get_events() -> BaseEventBus:
    return get_event_bus()


def get_notifications() -> BaseNotificationService:
    return get_notification_service()


# =============================================================================
# REQUEST CONTEXT
# =============================================================================

@dataclass
class RequestContext:
    """Caller, session and collaborators for one request."""
    db: AsyncSession
    identity: BaseIdentityProvider
    events: BaseEventBus
    notifications: BaseNotificationService
    principal: Optional[Principal] = None
    gate: AuthorizationGate = field(default_factory=AuthorizationGate)

    def orders(self) -> OrderLifecycleEngine:
        return OrderLifecycleEngine(self.db, events=self.events, gate=self.gate)

    def restaurants(self) -> RestaurantRegistry:
        return RestaurantRegistry(self.db, gate=self.gate)

    def menu(self) -> MenuCatalog:
        return MenuCatalog(self.db, gate=self.gate)

    def tables(self) -> TableRegistry:
        return TableRegistry(self.db, gate=self.gate)

    def otp(self) -> OtpService:
        return OtpService(self.db, self.notifications)

    def staff(self) -> StaffService:
        return StaffService(self.db, self.identity, gate=self.gate, otp=self.otp())

    def analytics(self) -> AnalyticsService:
        return AnalyticsService(self.db, gate=self.gate)


async def get_public_context(
    db: AsyncSession = Depends(get_db),
    identity: BaseIdentityProvider = Depends(get_identity),
    events: BaseEventBus = Depends(get_events),
    notifications: BaseNotificationService = Depends(get_notifications),
) -> RequestContext:
    """Context without a caller (customer pages, login, OTP)."""
    return RequestContext(db=db, identity=identity, events=events, notifications=notifications)


async def get_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    ctx: RequestContext = Depends(get_public_context),
) -> RequestContext:
    """Context for staff routes; 401 when the bearer token is missing or invalid."""
    if credentials is None:
        raise AuthorizationError("Authentication required", reason=DenyReason.UNAUTHENTICATED)
    ctx.principal = await ctx.staff().resolve_principal(credentials.credentials)
    return ctx
