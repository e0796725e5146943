"""Notifications domain: dispatch, batching, retries and delivery sinks."""

from .batching import BatchProcessor
from .metrics import DeliveryMetrics
from .models import Notification, NotificationPriority, NotificationType
from .retry import JobRunner, RetryCoordinator
from .schemas import SendOptions
from .service import DeliveryStrategy, NotificationDispatcher

__all__ = [
    "BatchProcessor",
    "DeliveryMetrics",
    "DeliveryStrategy",
    "JobRunner",
    "Notification",
    "NotificationDispatcher",
    "NotificationPriority",
    "NotificationType",
    "RetryCoordinator",
    "SendOptions",
]
