"""SQLAlchemy models and enums for the presence domain."""

from __future__ import annotations

import enum

from sqlalchemy import Column, DateTime, Enum as SAEnum, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from qc_realtime.core.db_defaults import utcnow
from qc_realtime.models.base import Base


class PresenceStatus(str, enum.Enum):
    ONLINE = "online"
    AWAY = "away"
    STEPPED_AWAY = "stepped_away"
    OFFLINE = "offline"


class PresenceRecord(Base):
    """Last known presence of a user; one row per user, updated in place."""

    __tablename__ = "presence_records"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    couple_id = Column(
        Integer, ForeignKey("couples.id", ondelete="SET NULL"), nullable=True
    )
    status = Column(
        SAEnum(PresenceStatus),
        nullable=False,
        default=PresenceStatus.ONLINE,
        index=True,
    )
    last_seen_at = Column(DateTime(timezone=True), nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=True)
    current_activity = Column(String, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    user = relationship("User", back_populates="presence")
