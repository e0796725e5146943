"""Notification dispatch: validation, persistence, strategy selection and delivery.

Delivery strategies:

- IMMEDIATE: broadcast on ``user:<id>``, then push (high/urgent only), then email
  hand-off (action-required types only).
- BATCHED: low priority; queued on the process-wide `BatchProcessor`.
- SCHEDULED: only when a caller passes an explicit ``deliver_at`` in the future; the
  job runner fires the delivery at that time.

Delivery never raises to callers. Failures are written to the notification's
metadata, counted, and high-priority notifications are handed to the
`RetryCoordinator`. Input validation is the one error that does propagate.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from qc_realtime.core.db_defaults import as_utc, utcnow
from qc_realtime.core.exceptions import NotFoundException, NotificationValidationError
from qc_realtime.core.realtime import BroadcastSink

from .batching import BatchProcessor
from .common import logger, notification_payload
from .email import EmailSink
from .metrics import DeliveryMetrics
from .models import (
    BODY_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    Notification,
    NotificationPriority,
    NotificationType,
)
from .push import PushSink
from .repository import NotificationRepository
from .retry import JobRunner, RetryCoordinator
from .schemas import SendOptions

FAILURE_KEYS = ("delivery_failed", "delivery_error", "failed_at")
VALID_TYPES = frozenset(item.value for item in NotificationType)
VALID_PRIORITIES = frozenset(item.value for item in NotificationPriority)


class DeliveryStrategy(str, enum.Enum):
    IMMEDIATE = "immediate"
    BATCHED = "batched"
    SCHEDULED = "scheduled"


class NotificationDispatcher:
    """Sends notifications for one database session."""

    def __init__(
        self,
        db: Session,
        *,
        broadcaster: BroadcastSink,
        push_sink: PushSink,
        email_sink: EmailSink,
        batch_processor: BatchProcessor,
        job_runner: JobRunner,
        metrics: DeliveryMetrics,
        retry_delays: Iterable[float] = (5, 30, 120),
        retention_days: int = 30,
        archive_max_days: int = 90,
    ) -> None:
        self.db = db
        self.repository = NotificationRepository(db)
        self.broadcaster = broadcaster
        self.push_sink = push_sink
        self.email_sink = email_sink
        self.batch_processor = batch_processor
        self.job_runner = job_runner
        self.metrics = metrics
        self.retry_coordinator = RetryCoordinator(
            self.repository, job_runner, tuple(retry_delays)
        )
        self.retention_days = retention_days
        self.archive_max_days = archive_max_days

    # ---------------------------------------------------------------- send
    async def send(
        self,
        user,
        notification_type: str,
        title: str,
        body: str,
        options: Optional[SendOptions] = None,
    ) -> Optional[Notification]:
        """Create and dispatch one notification; None when the user opted out."""
        options = options or SendOptions()
        priority = self._validate(notification_type, title, body, options.priority)

        if self._type_disabled(user, notification_type):
            logger.info(
                "User %s disabled %s notifications; skipping",
                user.id,
                notification_type,
            )
            return None

        notification = self.repository.create(
            self._build(user, notification_type, title, body, priority, options)
        )
        self.metrics.track("sent", notification_type)
        await self._dispatch(notification, user, options)
        return notification

    async def send_bulk(
        self,
        users: Iterable[Any],
        notification_type: str,
        title: str,
        body: str,
        options: Optional[SendOptions] = None,
    ) -> List[Notification]:
        """Create notifications for every user who has not disabled the type.

        All rows are persisted in a single commit before any delivery starts.
        """
        options = options or SendOptions()
        priority = self._validate(notification_type, title, body, options.priority)

        recipients = [
            user for user in users if not self._type_disabled(user, notification_type)
        ]
        created = self.repository.create_many(
            [
                self._build(user, notification_type, title, body, priority, options)
                for user in recipients
            ]
        )
        for notification, user in zip(created, recipients):
            await self._dispatch(notification, user, options)

        self.metrics.track_count("bulk_sent", len(created))
        return created

    # ------------------------------------------------------------ strategies
    def select_strategy(
        self, notification: Notification, options: Optional[SendOptions] = None
    ) -> DeliveryStrategy:
        deliver_at = as_utc(options.deliver_at) if options else None
        if deliver_at is not None and deliver_at > utcnow():
            return DeliveryStrategy.SCHEDULED
        if notification.high_priority:
            return DeliveryStrategy.IMMEDIATE
        if notification.priority == NotificationPriority.LOW:
            return DeliveryStrategy.BATCHED
        return DeliveryStrategy.IMMEDIATE

    async def _dispatch(
        self, notification: Notification, user, options: SendOptions
    ) -> None:
        strategy = self.select_strategy(notification, options)
        if strategy is DeliveryStrategy.IMMEDIATE:
            await self._deliver_guarded(notification, user)
        elif strategy is DeliveryStrategy.BATCHED:
            self._add_to_batch(notification)
        elif strategy is DeliveryStrategy.SCHEDULED:
            self._schedule_delivery(notification, as_utc(options.deliver_at))
        else:  # pragma: no cover - exhaustive
            raise ValueError(f"Unknown delivery strategy: {strategy}")

    def _add_to_batch(self, notification: Notification) -> None:
        self.batch_processor.add(notification.id)
        logger.debug(
            "Notification %s queued for batch delivery (queue=%s)",
            notification.id,
            self.batch_processor.queue_size,
        )

    def _schedule_delivery(self, notification: Notification, deliver_at: datetime) -> None:
        delay = max((deliver_at - utcnow()).total_seconds(), 0)
        self.job_runner.schedule_once(delay, notification.id, 0)
        notification.update_metadata(scheduled_for=deliver_at.isoformat())
        self.repository.commit()
        logger.info(
            "Notification %s scheduled for %s", notification.id, deliver_at.isoformat()
        )

    # -------------------------------------------------------------- delivery
    async def deliver_by_id(self, notification_id: int) -> bool:
        """Deliver a stored notification now (batch flush and scheduled jobs)."""
        return await self.redeliver(notification_id, 0)

    async def redeliver(self, notification_id: int, attempt: int) -> bool:
        """Run the guarded immediate path for a stored notification."""
        notification = self.repository.get(notification_id)
        if notification is None:
            logger.warning("Notification %s no longer exists; skipping", notification_id)
            return False
        return await self._deliver_guarded(notification, notification.user, attempt)

    async def _deliver_guarded(
        self, notification: Notification, user, attempt: int = 0
    ) -> bool:
        try:
            await self._deliver_immediately(notification, user)
        except Exception as exc:
            self._handle_delivery_failure(notification, exc, attempt)
            return False

        notification.discard_metadata(*FAILURE_KEYS)
        notification.update_metadata(delivered_at=utcnow().isoformat())
        self.repository.commit()
        return True

    async def _deliver_immediately(self, notification: Notification, user) -> None:
        await self.broadcaster.publish(
            f"user:{user.id}", notification_payload(notification)
        )

        if self._should_send_push(notification, user):
            await self.push_sink.deliver(
                user.push_token,
                notification.title,
                notification.body,
                data={
                    "notification_id": str(notification.id),
                    "type": notification.notification_type,
                },
            )

        if self._should_send_email(notification, user):
            self.email_sink.enqueue(notification)

        self.metrics.track("delivered", notification.notification_type)

    def _handle_delivery_failure(
        self, notification: Notification, error: Exception, attempt: int
    ) -> None:
        logger.error(
            "Delivery of notification %s failed (attempt %s): %s",
            notification.id,
            attempt,
            error,
        )
        notification.update_metadata(
            delivery_failed=True,
            delivery_error=str(error),
            failed_at=utcnow().isoformat(),
        )
        self.repository.commit()
        self.metrics.track("failed", notification.notification_type)
        if notification.high_priority:
            self.retry_coordinator.retry(notification, attempt)

    @staticmethod
    def _should_send_push(notification: Notification, user) -> bool:
        return bool(
            notification.high_priority
            and user.push_token
            and user.push_notifications_enabled
        )

    @staticmethod
    def _should_send_email(notification: Notification, user) -> bool:
        return bool(
            notification.action_required
            and user.email_notifications_enabled
            and user.wants_email_for_actions()
        )

    # -------------------------------------------------------------- reads
    async def mark_as_read(self, notification_id: int, user_id: int) -> Notification:
        notification = self.repository.get_for_user(notification_id, user_id)
        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            self.repository.commit()
        return notification

    async def mark_all_as_read(self, user) -> int:
        """Mark every unread notification of ``user`` read and tell their sockets."""
        now = utcnow()
        updated = self.repository.mark_all_read(user.id, now)
        if updated:
            topic = f"user:{user.id}"
            await self.broadcaster.publish(
                topic,
                {
                    "type": "all_notifications_read",
                    "count": updated,
                    "timestamp": now.isoformat(),
                },
            )
            await self.broadcaster.publish(
                topic,
                {
                    "type": "unread_count_updated",
                    "count": self.repository.count_unread(user.id),
                },
            )
            logger.info("Marked %s notification(s) read for user %s", updated, user.id)
        return updated

    async def get_user_stats(self, user) -> Dict[str, Any]:
        now = utcnow()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return {
            "total": self.repository.count_for_user(user.id),
            "unread": self.repository.count_unread(user.id),
            "high_priority_unread": self.repository.count_unread(
                user.id, high_priority_only=True
            ),
            "today": self.repository.count_for_user(user.id, since=start_of_day),
            "this_week": self.repository.count_for_user(
                user.id, since=now - timedelta(days=7)
            ),
            "by_type": self.repository.count_by_type(user.id),
            "average_read_time": self._average_read_time(
                self.repository.read_timestamps(user.id)
            ),
        }

    @staticmethod
    def _average_read_time(pairs: List[Tuple[datetime, datetime]]) -> float:
        """Mean seconds between creation and read, rounded; 0 when nothing was read."""
        if not pairs:
            return 0
        total = sum(
            (as_utc(read_at) - as_utc(created_at)).total_seconds()
            for created_at, read_at in pairs
        )
        return round(total / len(pairs))

    async def get_delivery_metrics(self) -> Dict[str, int]:
        start_of_day = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        return {
            **self.metrics.snapshot(),
            "queue_size": self.batch_processor.queue_size,
            "failed_today": self.repository.count_failed_since(start_of_day),
        }

    # ------------------------------------------------------------ retention
    async def cleanup_old_notifications(self) -> Dict[str, int]:
        """Delete read notifications past retention, then archive important ones.

        The two passes are independent: anything the delete pass removed is simply
        no longer there for the archive pass.
        """
        now = utcnow()
        deleted = self.repository.delete_read_before(
            now - timedelta(days=self.retention_days)
        )

        archived = 0
        archived_at = now.isoformat()
        for notification in self.repository.archivable_between(
            now - timedelta(days=self.archive_max_days),
            now - timedelta(days=self.retention_days),
        ):
            notification.update_metadata(archived=True, archived_at=archived_at)
            archived += 1
        if archived:
            self.repository.commit()

        logger.info(
            "Notification cleanup deleted %s and archived %s", deleted, archived
        )
        return {"deleted": deleted, "archived": archived}

    # -------------------------------------------------------- typed helpers
    async def send_reminder_notification(
        self,
        user,
        *,
        reminder_id: int,
        title: str,
        description: str,
        scheduled_for: Optional[datetime] = None,
    ) -> Optional[Notification]:
        return await self.send(
            user,
            NotificationType.CHECK_IN_REMINDER.value,
            title,
            description,
            SendOptions(
                priority=NotificationPriority.HIGH.value,
                data={
                    "reminder_id": reminder_id,
                    "scheduled_time": scheduled_for.isoformat() if scheduled_for else None,
                },
            ),
        )

    async def send_milestone_notification(
        self,
        couple,
        *,
        milestone_id: int,
        title: str,
        description: str,
        achieved_at: Optional[datetime] = None,
    ) -> List[Notification]:
        return await self.send_bulk(
            couple.users,
            NotificationType.MILESTONE_ACHIEVED.value,
            f"Milestone Achieved: {title}",
            description,
            SendOptions(
                priority=NotificationPriority.NORMAL.value,
                couple_id=couple.id,
                data={
                    "milestone_id": milestone_id,
                    "achievement_date": achieved_at.isoformat() if achieved_at else None,
                },
            ),
        )

    async def send_action_item_reminder(
        self,
        user,
        *,
        action_item_id: int,
        title: str,
        due_date: date,
        today: Optional[date] = None,
    ) -> Optional[Notification]:
        days_until_due = (due_date - (today or utcnow().date())).days
        if days_until_due <= 0:
            priority = NotificationPriority.URGENT
        elif days_until_due == 1:
            priority = NotificationPriority.HIGH
        else:
            priority = NotificationPriority.NORMAL

        return await self.send(
            user,
            NotificationType.ACTION_ITEM_DUE_SOON.value,
            f"Action Item Due: {title}",
            f"This action item is due in {days_until_due} days",
            SendOptions(
                priority=priority.value,
                data={"action_item_id": action_item_id, "due_date": due_date.isoformat()},
            ),
        )

    # --------------------------------------------------------------- helpers
    def _validate(
        self, notification_type: str, title: str, body: str, priority: str
    ) -> NotificationPriority:
        if notification_type not in VALID_TYPES:
            raise NotificationValidationError(
                f"Unknown notification type: {notification_type}",
                field="notification_type",
            )
        if not isinstance(title, str) or not title.strip():
            raise NotificationValidationError("Title must not be blank", field="title")
        if len(title) > TITLE_MAX_LENGTH:
            raise NotificationValidationError(
                f"Title exceeds {TITLE_MAX_LENGTH} characters", field="title"
            )
        if not isinstance(body, str) or not body.strip():
            raise NotificationValidationError("Body must not be blank", field="body")
        if len(body) > BODY_MAX_LENGTH:
            raise NotificationValidationError(
                f"Body exceeds {BODY_MAX_LENGTH} characters", field="body"
            )
        priority_value = getattr(priority, "value", priority)
        if priority_value not in VALID_PRIORITIES:
            raise NotificationValidationError(
                f"Unknown priority: {priority_value}", field="priority"
            )
        return NotificationPriority(priority_value)

    @staticmethod
    def _type_disabled(user, notification_type: str) -> bool:
        preferences = user.notification_preferences or {}
        return bool(preferences.get(f"disable_{notification_type}", False))

    @staticmethod
    def _build(
        user,
        notification_type: str,
        title: str,
        body: str,
        priority: NotificationPriority,
        options: SendOptions,
    ) -> Notification:
        return Notification(
            user_id=user.id,
            couple_id=options.couple_id or user.couple_id,
            notification_type=notification_type,
            title=title,
            body=body,
            priority=priority,
            data=dict(options.data or {}),
            notification_metadata={},
            is_read=False,
        )


__all__ = ["DeliveryStrategy", "NotificationDispatcher"]
