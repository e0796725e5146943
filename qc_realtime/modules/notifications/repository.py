"""Data-access helpers for notifications domain."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import ARCHIVABLE_TYPES, HIGH_PRIORITIES, Notification


class NotificationRepository:
    """Encapsulate notification-specific database operations.

    Writes commit immediately; on failure the session is rolled back and the
    error re-raised to the caller.
    """

    def __init__(self, db: Session):
        self.db = db

    # --------------------------------------------------------------- writes
    def create(self, notification: Notification) -> Notification:
        self.db.add(notification)
        self.commit()
        self.db.refresh(notification)
        return notification

    def create_many(self, notifications: Sequence[Notification]) -> List[Notification]:
        """Persist all notifications in a single commit."""
        if not notifications:
            return []
        self.db.add_all(list(notifications))
        self.commit()
        for notification in notifications:
            self.db.refresh(notification)
        return list(notifications)

    def mark_all_read(self, user_id: int, read_at: datetime) -> int:
        updated = (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .update(
                {Notification.is_read: True, Notification.read_at: read_at},
                synchronize_session="fetch",
            )
        )
        self.commit()
        return updated or 0

    def commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # --------------------------------------------------------------- reads
    def get(self, notification_id: int) -> Optional[Notification]:
        return self.db.get(Notification, notification_id)

    def get_for_user(self, notification_id: int, user_id: int) -> Optional[Notification]:
        return (
            self.db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )

    def count_for_user(self, user_id: int, *, since: Optional[datetime] = None) -> int:
        query = self.db.query(func.count(Notification.id)).filter(
            Notification.user_id == user_id
        )
        if since is not None:
            query = query.filter(Notification.created_at >= since)
        return query.scalar() or 0

    def count_unread(self, user_id: int, *, high_priority_only: bool = False) -> int:
        query = self.db.query(func.count(Notification.id)).filter(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
        if high_priority_only:
            query = query.filter(Notification.priority.in_(list(HIGH_PRIORITIES)))
        return query.scalar() or 0

    def count_by_type(self, user_id: int) -> Dict[str, int]:
        rows = (
            self.db.query(Notification.notification_type, func.count(Notification.id))
            .filter(Notification.user_id == user_id)
            .group_by(Notification.notification_type)
            .all()
        )
        return {notification_type: count for notification_type, count in rows}

    def read_timestamps(self, user_id: int) -> List[tuple]:
        """(created_at, read_at) pairs for notifications the user has read."""
        return (
            self.db.query(Notification.created_at, Notification.read_at)
            .filter(Notification.user_id == user_id, Notification.read_at.isnot(None))
            .all()
        )

    def count_failed_since(self, since: datetime) -> int:
        """Notifications created at or after ``since`` still flagged ``delivery_failed``."""
        failed = Notification.notification_metadata["delivery_failed"].as_boolean()
        return (
            self.db.query(func.count(Notification.id))
            .filter(Notification.created_at >= since, failed.is_(True))
            .scalar()
            or 0
        )

    # ------------------------------------------------------------ retention
    def delete_read_before(self, cutoff: datetime) -> int:
        deleted = (
            self.db.query(Notification)
            .filter(Notification.read_at.isnot(None), Notification.read_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.commit()
        return deleted or 0

    def archivable_between(self, oldest: datetime, newest: datetime) -> List[Notification]:
        """Archivable-type notifications created in ``[oldest, newest)``."""
        return (
            self.db.query(Notification)
            .filter(
                Notification.notification_type.in_(list(ARCHIVABLE_TYPES)),
                Notification.created_at >= oldest,
                Notification.created_at < newest,
            )
            .all()
        )
