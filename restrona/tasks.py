"""
Celery Tasks
Periodic maintenance run outside the request path.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from restrona.celery_worker import celery_app
from restrona.core.config import get_settings
from restrona.services.notifications import get_notification_service
from restrona.services.otp import OtpService

logger = logging.getLogger(__name__)


async def purge_expired_otps(database_url: str) -> int:
    """Delete expired and consumed verification codes; returns how many."""
    # Each task run gets its own event loop, so connections must not be pooled across runs
    engine = create_async_engine(database_url, poolclass=NullPool)
    try:
        session_maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        async with session_maker() as db:
            return await OtpService(db, get_notification_service()).cleanup_expired()
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    retry_backoff=True,
)
def cleanup_expired_otps(self) -> dict:
    """
    Purge verification codes that expired or were already used.
    Scheduled by Celery beat every OTP_CLEANUP_INTERVAL_MINUTES.
    """
    task_id = self.request.id
    start_time = time.time()

    try:
        removed = asyncio.run(purge_expired_otps(get_settings().database_url))
    except Exception as e:
        logger.error(f"Task {task_id}: OTP cleanup failed - {e}")
        raise self.retry(exc=e)

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"Task {task_id}: removed {removed} verification codes in {elapsed}s")
    return {
        'success': True,
        'removed': removed,
        'task_id': task_id,
        'processing_time_seconds': elapsed,
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now(timezone.utc).isoformat()
    }
