"""
FastAPI Application Entry Point

Restrona POS - multi-tenant restaurant ordering backend.
Supports both Mock providers (development) and real APIs (staging/production).

Endpoints:
    - /api/auth/*: staff sign-in, profile, phone verification
    - /api/restaurants/*: tenants, menus, tables, orders, analytics
    - /api/orders/{id}/*: order detail and status workflow
    - /api/users/*: staff accounts
    - /api/public/restaurants/{id}/*: customer menu and ordering
    - WS /api/restaurants/{id}/orders/live: live order dashboard
    - GET /health: system health check
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from restrona.api import api_router
from restrona.api.deps import get_events, get_identity, get_notifications
from restrona.core.config import get_settings, setup_logging
from restrona.core.errors import RestronaError
from restrona.database import async_session_maker, engine, get_db, init_db
from restrona.schemas import HealthResponse
from restrona.services.events import BaseEventBus, get_event_bus
from restrona.services.identity import BaseIdentityProvider, get_identity_provider
from restrona.services.notifications import BaseNotificationService, get_notification_service
from restrona.services.staff import StaffService

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

async def seed_development_admin() -> None:
    """Create the development super admin so a fresh install can sign in."""
    if not settings.dev_super_admin_email or not settings.dev_super_admin_password:
        return
    async with async_session_maker() as db:
        service = StaffService(db, get_identity_provider())
        await service.ensure_super_admin(
            settings.dev_super_admin_email,
            settings.dev_super_admin_password,
        )
    logger.info(f"✅ Development super admin: {settings.dev_super_admin_email}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("✅ Database initialized")

    # Log provider configuration
    logger.info(f"✅ Identity Provider: {get_identity_provider().provider_name}")
    logger.info(f"✅ Event Bus: {get_event_bus().provider_name}")
    logger.info(f"✅ Notification Service: {get_notification_service().provider_name}")

    if settings.is_development:
        await seed_development_admin()

    # Validate production config
    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await get_event_bus().close()
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-tenant restaurant POS: QR-code table ordering, a guarded order "
        "workflow for staff and live order dashboards."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🍽️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    events: BaseEventBus = Depends(get_events),
    identity: BaseIdentityProvider = Depends(get_identity),
    notifications: BaseNotificationService = Depends(get_notifications),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    event_status = "healthy" if await events.health_check() else "unhealthy"
    identity_status = "healthy" if await identity.health_check() else "unhealthy"
    notification_status = "healthy" if await notifications.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, event_status, identity_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        event_bus=event_status,
        identity_provider=identity_status,
        notification_service=notification_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(RestronaError)
async def domain_exception_handler(request: Request, exc: RestronaError) -> JSONResponse:
    """Map service errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "restrona.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
