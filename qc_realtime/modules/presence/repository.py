"""Data-access helpers for presence records."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from .models import PresenceRecord, PresenceStatus

SWEEPABLE_STATUSES = (PresenceStatus.ONLINE, PresenceStatus.AWAY)


class PresenceRepository:
    """Encapsulate presence-specific database operations.

    Every write commits; on failure the session is rolled back and the error re-raised.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_for_user(self, user_id: int) -> Optional[PresenceRecord]:
        return (
            self.db.query(PresenceRecord)
            .filter(PresenceRecord.user_id == user_id)
            .first()
        )

    def sweepable(self) -> List[PresenceRecord]:
        """Records that may be demoted: online or away with a known activity time."""
        return (
            self.db.query(PresenceRecord)
            .filter(
                PresenceRecord.status.in_(SWEEPABLE_STATUSES),
                PresenceRecord.last_activity_at.isnot(None),
            )
            .order_by(PresenceRecord.id)
            .all()
        )

    def upsert(
        self,
        user_id: int,
        *,
        couple_id: Optional[int],
        status: PresenceStatus,
        last_seen_at: Optional[datetime] = None,
        last_activity_at: Optional[datetime] = None,
        current_activity: Optional[str] = None,
    ) -> PresenceRecord:
        record = self.get_for_user(user_id)
        if record is None:
            record = PresenceRecord(user_id=user_id)
            self.db.add(record)
        record.couple_id = couple_id
        record.status = status
        if last_seen_at is not None:
            record.last_seen_at = last_seen_at
        record.last_activity_at = last_activity_at
        record.current_activity = current_activity
        return self.save(record)

    def save(self, record: PresenceRecord) -> PresenceRecord:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(record)
        return record
