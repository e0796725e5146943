"""Composition root for the realtime engine.

One `RealtimeServices` instance is built per process (by the app factory or the
Celery worker) and kept on ``app.state.services``. It owns the long-lived
collaborators and builds the per-session services around a SQLAlchemy `Session`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy.orm import Session

from qc_realtime import models  # noqa: F401
from qc_realtime.core.cache import (
    NullPresenceCache,
    PresenceCache,
    RedisCache,
    RedisPresenceCache,
)
from qc_realtime.core.config import Settings
from qc_realtime.core.realtime import BroadcastSink, ConnectionManager
from qc_realtime.core.scheduling import AsyncioScheduler, Scheduler
from qc_realtime.modules.notifications.batching import BatchProcessor
from qc_realtime.modules.notifications.email import CeleryEmailSink, EmailSink
from qc_realtime.modules.notifications.metrics import DeliveryMetrics
from qc_realtime.modules.notifications.push import (
    FirebasePushSink,
    PushSink,
    initialize_firebase,
)
from qc_realtime.modules.notifications.retry import CeleryJobRunner, JobRunner
from qc_realtime.modules.notifications.service import NotificationDispatcher
from qc_realtime.modules.presence.idle import IdleSweeper
from qc_realtime.modules.presence.service import PresenceTracker
from qc_realtime.modules.presence.typing_indicators import TypingIndicatorManager

logger = logging.getLogger(__name__)


class RealtimeServices:
    def __init__(
        self,
        *,
        settings: Settings,
        session_factory: Callable[[], Session],
        scheduler: Scheduler,
        broadcaster: BroadcastSink,
        presence_cache: PresenceCache,
        push_sink: PushSink,
        email_sink: EmailSink,
        job_runner: JobRunner,
        redis_cache: Optional[RedisCache] = None,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.scheduler = scheduler
        self.broadcaster = broadcaster
        self.presence_cache = presence_cache
        self.push_sink = push_sink
        self.email_sink = email_sink
        self.job_runner = job_runner
        self.redis_cache = redis_cache

        self.metrics = DeliveryMetrics()
        self.typing = TypingIndicatorManager(
            broadcaster,
            scheduler,
            timeout_seconds=settings.TYPING_TIMEOUT_SECONDS,
        )
        self.batch_processor = BatchProcessor(
            scheduler,
            self.deliver_notification,
            batch_size=settings.BATCH_SIZE,
            flush_seconds=settings.BATCH_FLUSH_SECONDS,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        session_factory: Optional[Callable[[], Session]] = None,
    ) -> "RealtimeServices":
        """Wire production collaborators: Redis (when configured), Celery, Firebase."""
        if session_factory is None:
            from qc_realtime.core.database import SessionLocal

            session_factory = SessionLocal

        redis_cache: Optional[RedisCache] = None
        presence_cache: PresenceCache = NullPresenceCache()
        if settings.redis_url:
            redis_cache = RedisCache(
                settings.redis_url, default_ttl=settings.PRESENCE_CACHE_TTL
            )
            presence_cache = RedisPresenceCache(
                redis_cache, ttl=settings.PRESENCE_CACHE_TTL
            )

        broadcaster = ConnectionManager(
            cache=redis_cache,
            channel_prefix=settings.REALTIME_REDIS_CHANNEL_PREFIX,
        )
        push_enabled = initialize_firebase(
            settings.firebase_project_id, settings.firebase_api_key
        )
        return cls(
            settings=settings,
            session_factory=session_factory,
            scheduler=AsyncioScheduler(),
            broadcaster=broadcaster,
            presence_cache=presence_cache,
            push_sink=FirebasePushSink(enabled=push_enabled),
            email_sink=CeleryEmailSink(),
            job_runner=CeleryJobRunner(),
            redis_cache=redis_cache,
        )

    # ------------------------------------------------------------ lifecycle
    async def startup(self, *, listen: bool = True) -> None:
        if self.redis_cache is not None:
            await self.redis_cache.init_cache()
        if listen and isinstance(self.broadcaster, ConnectionManager):
            await self.broadcaster.start_listener()

    async def shutdown(self) -> None:
        if isinstance(self.broadcaster, ConnectionManager):
            await self.broadcaster.stop_listener()
        if self.batch_processor.queue_size:
            logger.warning(
                "Dropping %s queued notification(s) on shutdown",
                self.batch_processor.queue_size,
            )
        self.batch_processor.clear()
        if isinstance(self.scheduler, AsyncioScheduler):
            await self.scheduler.shutdown()
        if self.redis_cache is not None:
            await self.redis_cache.close()

    # ----------------------------------------------------- per-session services
    def tracker(self, db: Session) -> PresenceTracker:
        return PresenceTracker(
            db,
            cache=self.presence_cache,
            broadcaster=self.broadcaster,
            typing=self.typing,
        )

    def sweeper(self, db: Session) -> IdleSweeper:
        return IdleSweeper(
            self.tracker(db),
            idle_timeout_seconds=self.settings.IDLE_TIMEOUT_SECONDS,
            stepped_away_timeout_seconds=self.settings.STEPPED_AWAY_TIMEOUT_SECONDS,
        )

    def dispatcher(self, db: Session) -> NotificationDispatcher:
        return NotificationDispatcher(
            db,
            broadcaster=self.broadcaster,
            push_sink=self.push_sink,
            email_sink=self.email_sink,
            batch_processor=self.batch_processor,
            job_runner=self.job_runner,
            metrics=self.metrics,
            retry_delays=self.settings.NOTIFICATION_RETRY_DELAYS,
            retention_days=self.settings.NOTIFICATION_RETENTION_DAYS,
            archive_max_days=self.settings.NOTIFICATION_ARCHIVE_MAX_DAYS,
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()

    # ------------------------------------------------------ detached entry points
    async def deliver_notification(self, notification_id: int) -> bool:
        """Deliver a stored notification in a fresh session (batch flush)."""
        with self.session() as db:
            return await self.dispatcher(db).deliver_by_id(notification_id)

    async def redeliver_notification(self, notification_id: int, attempt: int) -> bool:
        with self.session() as db:
            return await self.dispatcher(db).redeliver(notification_id, attempt)

    async def check_idle_users(self) -> int:
        with self.session() as db:
            return await self.sweeper(db).check_idle_users()

    async def cleanup_old_notifications(self) -> dict:
        with self.session() as db:
            return await self.dispatcher(db).cleanup_old_notifications()


__all__ = ["RealtimeServices"]
