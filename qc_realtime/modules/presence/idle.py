"""Idle demotion sweep, triggered periodically by Celery beat."""

from __future__ import annotations

from datetime import timedelta

from qc_realtime.core.db_defaults import as_utc, utcnow

from .common import logger
from .models import PresenceStatus
from .repository import PresenceRepository
from .service import PresenceTracker

IDLE_REASON = "idle_timeout"
IDLE_ACTIVITY = "idle"
STEPPED_AWAY_REASON = "extended_idle"
STEPPED_AWAY_ACTIVITY = "stepped_away"


class IdleSweeper:
    """Demote stale online/away users. Never promotes."""

    def __init__(
        self,
        tracker: PresenceTracker,
        *,
        idle_timeout_seconds: int = 120,
        stepped_away_timeout_seconds: int = 300,
    ) -> None:
        self.tracker = tracker
        self.repository: PresenceRepository = tracker.repository
        self.idle_timeout = timedelta(seconds=idle_timeout_seconds)
        self.stepped_away_timeout = timedelta(seconds=stepped_away_timeout_seconds)

    async def check_idle_users(self) -> int:
        """Return the number of records demoted in this pass."""
        now = utcnow()
        demoted = 0
        for record in self.repository.sweepable():
            idle = now - as_utc(record.last_activity_at)
            if idle > self.stepped_away_timeout:
                target = PresenceStatus.STEPPED_AWAY
                reason, activity = STEPPED_AWAY_REASON, STEPPED_AWAY_ACTIVITY
            elif idle > self.idle_timeout:
                target = PresenceStatus.AWAY
                reason, activity = IDLE_REASON, IDLE_ACTIVITY
            else:
                continue

            if record.status == target:
                continue
            await self.tracker.demote(record, target, reason=reason, activity=activity)
            demoted += 1

        if demoted:
            logger.info("Idle sweep demoted %s user(s)", demoted)
        return demoted


__all__ = ["IdleSweeper"]
