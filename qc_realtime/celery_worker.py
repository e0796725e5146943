"""Celery worker configuration and tasks.

Execution modes:
- Default: uses broker/backend from `settings` (e.g., Redis) with beat schedule enabled.
- Test: switches to in-memory broker/backend with eager execution so no external services are needed.

Tasks are thin sync wrappers: each runs one coroutine on a fresh event loop with a
worker-local `RealtimeServices`, so Redis connections never outlive their loop.
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator

from celery import Celery
from celery.schedules import crontab
from celery.utils.log import get_task_logger

from qc_realtime.core.config import settings
from qc_realtime.core.container import RealtimeServices
from qc_realtime.core.database import SessionLocal
from qc_realtime.modules.notifications.email import (
    build_notification_email,
    send_email_notification,
)
from qc_realtime.modules.notifications.models import Notification

logger = get_task_logger(__name__)

# ------------------------- Celery Setup -------------------------
celery_app = Celery(
    "qc_realtime",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_BACKEND_URL,
)


def _is_test_env() -> bool:
    return (
        settings.environment.lower() == "test"
        or os.getenv("APP_ENV", "").lower() == "test"
        or os.getenv("PYTEST_CURRENT_TEST") is not None
    )


if _is_test_env():
    # Use in-memory broker/backend and eager mode to avoid external services in tests.
    celery_app.conf.update(
        broker_url="memory://",
        result_backend="cache+memory://",
        task_always_eager=True,
        task_eager_propagates=True,
        beat_schedule={},
    )
else:
    # ------------------------- Beat Schedule Configuration -------------------------
    celery_app.conf.beat_schedule = {
        "check-idle-users": {
            "task": "qc_realtime.celery_worker.check_idle_users",
            "schedule": settings.IDLE_SWEEP_INTERVAL_SECONDS,
        },
        "cleanup-old-notifications": {
            "task": "qc_realtime.celery_worker.cleanup_old_notifications",
            "schedule": crontab(hour=0, minute=0),  # Run daily at midnight
        },
    }


@asynccontextmanager
async def worker_services() -> AsyncIterator[RealtimeServices]:
    """Services bound to the current loop; no pub/sub listener in workers."""
    services = RealtimeServices.from_settings(settings, session_factory=SessionLocal)
    await services.startup(listen=False)
    try:
        yield services
    finally:
        await services.shutdown()


async def _redeliver(notification_id: int, attempt: int) -> bool:
    async with worker_services() as services:
        return await services.redeliver_notification(notification_id, attempt)


async def _check_idle_users() -> int:
    async with worker_services() as services:
        return await services.check_idle_users()


async def _cleanup_old_notifications() -> dict:
    async with worker_services() as services:
        return await services.cleanup_old_notifications()


@celery_app.task(name="qc_realtime.celery_worker.redeliver_notification")
def redeliver_notification(notification_id: int, attempt: int) -> bool:
    """Retry job: re-run immediate delivery for a failed notification."""
    delivered = asyncio.run(_redeliver(notification_id, attempt))
    logger.info(
        "Redelivery of notification %s (attempt %s) %s",
        notification_id,
        attempt,
        "succeeded" if delivered else "failed",
    )
    return delivered


@celery_app.task(name="qc_realtime.celery_worker.check_idle_users")
def check_idle_users() -> int:
    return asyncio.run(_check_idle_users())


@celery_app.task(name="qc_realtime.celery_worker.cleanup_old_notifications")
def cleanup_old_notifications() -> dict:
    return asyncio.run(_cleanup_old_notifications())


@celery_app.task(name="qc_realtime.celery_worker.send_notification_email")
def send_notification_email(notification_id: int) -> bool:
    """Render and send the email for an action-required notification."""
    db = SessionLocal()
    try:
        notification = db.get(Notification, notification_id)
        if notification is None or notification.user is None:
            logger.warning("Notification %s has no recipient; skipping email", notification_id)
            return False
        if not notification.user.email:
            return False
        message = build_notification_email(notification, notification.user)
    finally:
        db.close()
    return asyncio.run(send_email_notification(message))
