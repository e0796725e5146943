"""Presence tracking: online/away/stepped-away/offline per user.

The persistent record is authoritative; the TTL cache is written through on every
change and read first by `get_presence`. Cache and broadcast failures are logged
and swallowed. Store failures propagate after the session is rolled back.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from qc_realtime.core.cache import PresenceCache
from qc_realtime.core.db_defaults import as_utc, utcnow
from qc_realtime.core.realtime import BroadcastSink

from .common import couple_topic, logger, user_topic
from .models import PresenceRecord, PresenceStatus
from .repository import PresenceRepository
from .schemas import PresenceSnapshot
from .typing_indicators import TypingIndicatorManager

PROMOTABLE_STATUSES = (PresenceStatus.AWAY, PresenceStatus.STEPPED_AWAY)


class PresenceTracker:
    """Write-through presence state machine for one database session."""

    def __init__(
        self,
        db: Session,
        *,
        cache: PresenceCache,
        broadcaster: BroadcastSink,
        typing: TypingIndicatorManager,
    ) -> None:
        self.db = db
        self.repository = PresenceRepository(db)
        self.cache = cache
        self.broadcaster = broadcaster
        self.typing = typing

    # ------------------------------------------------------------ transitions
    async def go_online(self, user) -> PresenceSnapshot:
        now = utcnow()
        record = self.repository.upsert(
            user.id,
            couple_id=user.couple_id,
            status=PresenceStatus.ONLINE,
            last_seen_at=now,
            last_activity_at=now,
            current_activity="active",
        )
        snapshot = self._snapshot(record)
        await self._cache_set(snapshot)
        if user.couple_id:
            await self._broadcast(
                couple_topic(user.couple_id),
                self._event(
                    "partner_online",
                    user_id=user.id,
                    user_name=user.name,
                    status=PresenceStatus.ONLINE.value,
                ),
            )
        logger.info("User %s is online", user.id)
        return snapshot

    async def go_offline(self, user) -> PresenceSnapshot:
        now = utcnow()
        record = self.repository.get_for_user(user.id)
        if record is not None:
            record.status = PresenceStatus.OFFLINE
            record.last_seen_at = now
            record.current_activity = None
            record.couple_id = user.couple_id
            record = self.repository.save(record)
            snapshot = self._snapshot(record)
        else:
            snapshot = PresenceSnapshot(
                user_id=user.id, last_seen_at=now, couple_id=user.couple_id
            )

        await self._cache_delete(user.id)
        cleared = self.typing.clear_user(user.id)
        if cleared:
            logger.debug("Cleared %s typing indicator(s) for user %s", cleared, user.id)

        if user.couple_id:
            await self._broadcast(
                couple_topic(user.couple_id),
                self._event(
                    "partner_offline",
                    user_id=user.id,
                    user_name=user.name,
                    status=PresenceStatus.OFFLINE.value,
                ),
            )
        logger.info("User %s is offline", user.id)
        return snapshot

    async def record_activity(
        self, user, activity_type: str = "interaction"
    ) -> PresenceSnapshot:
        """Touch last_activity_at; promote to online when away or stepped away."""
        record = self.repository.get_for_user(user.id)
        if record is None or record.status in PROMOTABLE_STATUSES:
            return await self.go_online(user)

        now = utcnow()
        last = as_utc(record.last_activity_at)
        if last is None or now > last:
            record.last_activity_at = now
        record = self.repository.save(record)
        snapshot = self._snapshot(record)
        if record.status != PresenceStatus.OFFLINE:
            await self._cache_set(snapshot)
        logger.debug("Activity %s recorded for user %s", activity_type, user.id)
        return snapshot

    async def demote(
        self,
        record: PresenceRecord,
        status: PresenceStatus,
        *,
        reason: str,
        activity: str,
    ) -> PresenceSnapshot:
        """Apply an idle demotion decided by `IdleSweeper`."""
        record.status = status
        record.current_activity = activity
        record = self.repository.save(record)
        snapshot = self._snapshot(record)
        await self._cache_set(snapshot)

        payload = self._event(
            "status_changed",
            user_id=record.user_id,
            status=status.value,
            reason=reason,
        )
        await self._broadcast(user_topic(record.user_id), payload)
        if record.couple_id:
            await self._broadcast(couple_topic(record.couple_id), payload)
        logger.info(
            "User %s demoted to %s (%s)", record.user_id, status.value, reason
        )
        return snapshot

    # ----------------------------------------------------------------- reads
    async def get_presence(self, user) -> PresenceSnapshot:
        cached = await self._cache_get(user.id)
        if cached is not None:
            try:
                snapshot = PresenceSnapshot.model_validate(cached)
            except ValueError:
                logger.warning("Discarding malformed cached presence for user %s", user.id)
            else:
                return snapshot.model_copy(
                    update={"is_typing": self.typing.is_typing(user.id)}
                )

        record = self.repository.get_for_user(user.id)
        if record is None:
            return PresenceSnapshot(
                user_id=user.id,
                couple_id=user.couple_id,
                is_typing=self.typing.is_typing(user.id),
            )
        return self._snapshot(record)

    async def get_couple_presence(self, couple) -> Dict[int, PresenceSnapshot]:
        return {member.id: await self.get_presence(member) for member in couple.users}

    # --------------------------------------------------------------- helpers
    def _snapshot(self, record: PresenceRecord) -> PresenceSnapshot:
        return PresenceSnapshot(
            user_id=record.user_id,
            status=record.status,
            last_seen_at=as_utc(record.last_seen_at),
            last_activity_at=as_utc(record.last_activity_at),
            current_activity=record.current_activity,
            couple_id=record.couple_id,
            is_typing=self.typing.is_typing(record.user_id),
        )

    @staticmethod
    def _event(event_type: str, **fields: Any) -> Dict[str, Any]:
        return {"type": event_type, **fields, "timestamp": utcnow().isoformat()}

    async def _cache_get(self, user_id: int) -> Optional[Dict[str, Any]]:
        try:
            return await self.cache.get(user_id)
        except Exception as exc:
            logger.warning("Presence cache read failed for user %s: %s", user_id, exc)
            return None

    async def _cache_set(self, snapshot: PresenceSnapshot) -> None:
        data = snapshot.model_dump(mode="json", exclude={"is_typing"})
        try:
            await self.cache.set(snapshot.user_id, data)
        except Exception as exc:
            logger.warning(
                "Presence cache write failed for user %s: %s", snapshot.user_id, exc
            )

    async def _cache_delete(self, user_id: int) -> None:
        try:
            await self.cache.delete(user_id)
        except Exception as exc:
            logger.warning("Presence cache delete failed for user %s: %s", user_id, exc)

    async def _broadcast(self, topic: str, payload: Dict[str, Any]) -> None:
        try:
            await self.broadcaster.publish(topic, payload)
        except Exception as exc:
            logger.error("Presence broadcast on %s failed: %s", topic, exc)


__all__ = ["PresenceTracker"]
