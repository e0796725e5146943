"""SQLAlchemy models and enums for the notifications domain."""

from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from qc_realtime.core.db_defaults import jsonb_type, utcnow
from qc_realtime.models.base import Base

TITLE_MAX_LENGTH = 255
BODY_MAX_LENGTH = 1000


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class NotificationType(str, enum.Enum):
    CHECK_IN_REMINDER = "check_in_reminder"
    CHECK_IN_STARTED = "check_in_started"
    CHECK_IN_COMPLETED = "check_in_completed"
    NOTE_SHARED = "note_shared"
    NOTE_MENTIONED = "note_mentioned"
    MILESTONE_ACHIEVED = "milestone_achieved"
    ACTION_ITEM_ASSIGNED = "action_item_assigned"
    ACTION_ITEM_DUE_SOON = "action_item_due_soon"
    ACTION_ITEM_COMPLETED = "action_item_completed"
    RELATIONSHIP_REQUEST = "relationship_request"
    RELATIONSHIP_ACCEPTED = "relationship_accepted"
    PARTNER_JOINED = "partner_joined"
    WEEKLY_SUMMARY = "weekly_summary"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
    FEATURE_UPDATE = "feature_update"


HIGH_PRIORITIES = frozenset({NotificationPriority.HIGH, NotificationPriority.URGENT})

ACTION_REQUIRED_TYPES = frozenset(
    {
        NotificationType.ACTION_ITEM_ASSIGNED.value,
        NotificationType.RELATIONSHIP_REQUEST.value,
        NotificationType.ACTION_ITEM_DUE_SOON.value,
    }
)

ARCHIVABLE_TYPES = frozenset(
    {
        NotificationType.MILESTONE_ACHIEVED.value,
        NotificationType.RELATIONSHIP_REQUEST.value,
        NotificationType.RELATIONSHIP_ACCEPTED.value,
    }
)


class Notification(Base):
    """Notification entity."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    couple_id = Column(
        Integer, ForeignKey("couples.id", ondelete="SET NULL"), nullable=True
    )
    notification_type = Column(String, nullable=False)
    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    body = Column(Text, nullable=False)
    priority = Column(
        SAEnum(NotificationPriority),
        nullable=False,
        default=NotificationPriority.NORMAL,
    )
    data = Column(jsonb_type(), nullable=False, default=dict)
    # retry_attempts, next_retry_at, delivery_failed, delivery_error, failed_at,
    # delivered_at, archived, archived_at. Always reassigned, never mutated in place.
    notification_metadata = Column(
        "metadata", jsonb_type(), nullable=False, default=dict
    )
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="notifications")

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
        Index("ix_notifications_created_at", "created_at"),
    )

    @property
    def high_priority(self) -> bool:
        return self.priority in HIGH_PRIORITIES

    @property
    def action_required(self) -> bool:
        return self.notification_type in ACTION_REQUIRED_TYPES

    @property
    def delivery_failed(self) -> bool:
        return bool((self.notification_metadata or {}).get("delivery_failed"))

    def update_metadata(self, **changes) -> dict:
        """Reassign metadata with `changes` merged in so the ORM sees the update."""
        merged = dict(self.notification_metadata or {})
        merged.update(changes)
        self.notification_metadata = merged
        return merged

    def discard_metadata(self, *keys: str) -> dict:
        remaining = {
            key: value
            for key, value in (self.notification_metadata or {}).items()
            if key not in keys
        }
        self.notification_metadata = remaining
        return remaining
