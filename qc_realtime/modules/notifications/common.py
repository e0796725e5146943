"""Shared helpers and state for the notifications domain."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger("qc_realtime.notifications")


def notification_payload(notification) -> Dict[str, Any]:
    """Wire format of a `new_notification` broadcast."""
    created_at: Optional[datetime] = notification.created_at
    priority = notification.priority
    return {
        "type": "new_notification",
        "notification": {
            "id": notification.id,
            "notification_type": notification.notification_type,
            "title": notification.title,
            "body": notification.body,
            "priority": getattr(priority, "value", priority),
            "data": notification.data or {},
            "is_read": notification.is_read,
            "created_at": created_at.isoformat() if created_at else None,
        },
    }


__all__ = ["logger", "notification_payload"]
