"""Debounced, auto-expiring typing indicators.

Typing state is keyed by ``(user_id, context, context_id)`` so two conversations
(e.g. two different check-ins) never interfere. Each key holds at most one armed
expiry timer: starting again cancels the previous handle before arming a new one.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, NamedTuple, Optional

from qc_realtime.core.db_defaults import utcnow
from qc_realtime.core.realtime import BroadcastSink
from qc_realtime.core.scheduling import Scheduler, TimerHandle

from .common import logger, user_topic

TYPING_EVENT = "typing_indicator"


class TypingKey(NamedTuple):
    user_id: int
    context: str
    context_id: str


@dataclass
class TypingState:
    key: TypingKey
    started_at: datetime
    handle: TimerHandle
    partner_id: Optional[int]
    user_name: Optional[str]


class TypingIndicatorManager:
    """Owns every live `TypingState` in the process."""

    def __init__(
        self,
        broadcaster: BroadcastSink,
        scheduler: Scheduler,
        *,
        timeout_seconds: float = 3.0,
    ) -> None:
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.timeout_seconds = timeout_seconds
        self._states: Dict[TypingKey, TypingState] = {}

    async def start_typing(self, user, context: str, context_id) -> TypingState:
        key = TypingKey(user.id, context, str(context_id))
        previous = self._states.pop(key, None)
        if previous is not None:
            previous.handle.cancel()

        partner = user.partner
        handle = self.scheduler.call_later(
            self.timeout_seconds,
            lambda: self.stop_typing(key.user_id, key.context, key.context_id),
        )
        state = TypingState(
            key=key,
            started_at=utcnow(),
            handle=handle,
            partner_id=partner.id if partner else None,
            user_name=user.name,
        )
        self._states[key] = state
        await self._notify_partner(state.partner_id, key, state.user_name, True)
        return state

    async def stop_typing(
        self,
        user_id: int,
        context: str,
        context_id,
        *,
        partner_id: Optional[int] = None,
        user_name: Optional[str] = None,
    ) -> bool:
        """Cancel the expiry and broadcast ``is_typing: false``.

        `partner_id`/`user_name` are only used when no state exists for the key.
        Returns True when a live state was removed.
        """
        key = TypingKey(user_id, context, str(context_id))
        state = self._states.pop(key, None)
        if state is not None:
            state.handle.cancel()
            partner_id = state.partner_id
            user_name = state.user_name
        await self._notify_partner(partner_id, key, user_name, False)
        return state is not None

    def clear_user(self, user_id: int) -> int:
        """Drop every typing state for a user without broadcasting."""
        keys = [key for key in self._states if key.user_id == user_id]
        for key in keys:
            self._states.pop(key).handle.cancel()
        return len(keys)

    def is_typing(self, user_id: int) -> bool:
        return any(key.user_id == user_id for key in self._states)

    def get_state(self, user_id: int, context: str, context_id) -> Optional[TypingState]:
        return self._states.get(TypingKey(user_id, context, str(context_id)))

    @property
    def active_count(self) -> int:
        return len(self._states)

    async def _notify_partner(
        self,
        partner_id: Optional[int],
        key: TypingKey,
        user_name: Optional[str],
        is_typing: bool,
    ) -> None:
        if partner_id is None:
            return
        payload = {
            "type": TYPING_EVENT,
            "user_id": key.user_id,
            "user_name": user_name,
            "context": key.context,
            "context_id": key.context_id,
            "is_typing": is_typing,
            "timestamp": utcnow().isoformat(),
        }
        try:
            await self.broadcaster.publish(user_topic(partner_id), payload)
        except Exception as exc:
            logger.error(
                "Typing broadcast to user %s failed: %s", partner_id, exc
            )


__all__ = ["TypingIndicatorManager", "TypingKey", "TypingState", "TYPING_EVENT"]
