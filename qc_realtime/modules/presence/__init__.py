"""Presence domain: status tracking, typing indicators and idle sweeping."""

from .idle import IdleSweeper
from .models import PresenceRecord, PresenceStatus
from .schemas import PresenceSnapshot
from .service import PresenceTracker
from .typing_indicators import TypingIndicatorManager, TypingKey, TypingState

__all__ = [
    "IdleSweeper",
    "PresenceRecord",
    "PresenceSnapshot",
    "PresenceStatus",
    "PresenceTracker",
    "TypingIndicatorManager",
    "TypingKey",
    "TypingState",
]
