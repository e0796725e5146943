"""Import every ORM model so `Base.metadata` knows the full schema."""

from qc_realtime.models.base import Base
from qc_realtime.modules.notifications.models import (
    Notification,
    NotificationPriority,
    NotificationType,
)
from qc_realtime.modules.presence.models import PresenceRecord, PresenceStatus
from qc_realtime.modules.users.models import Couple, User

__all__ = [
    "Base",
    "Couple",
    "Notification",
    "NotificationPriority",
    "NotificationType",
    "PresenceRecord",
    "PresenceStatus",
    "User",
]
