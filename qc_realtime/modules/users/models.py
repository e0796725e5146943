"""SQLAlchemy models for the users domain.

Only the fields the presence and notification engine reads are modelled here;
accounts and authentication live in the main application.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from qc_realtime.core.db_defaults import jsonb_type, utcnow
from qc_realtime.models.base import Base


class Couple(Base):
    """Two partners sharing a relationship space."""

    __tablename__ = "couples"

    id = Column(Integer, primary_key=True, nullable=False)
    name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    users = relationship("User", back_populates="couple", order_by="User.id")


class User(Base):
    """Application user model."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, nullable=False)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    couple_id = Column(
        Integer, ForeignKey("couples.id", ondelete="SET NULL"), nullable=True
    )
    push_token = Column(String, nullable=True)
    push_notifications_enabled = Column(Boolean, nullable=False, default=True)
    email_notifications_enabled = Column(Boolean, nullable=False, default=True)
    # Keys: ``disable_<notification_type>`` and ``email_for_actions``.
    notification_preferences = Column(jsonb_type(), nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    couple = relationship("Couple", back_populates="users")
    presence = relationship(
        "PresenceRecord", back_populates="user", uselist=False, passive_deletes=True
    )
    notifications = relationship(
        "Notification", back_populates="user", passive_deletes=True
    )

    @property
    def partner(self) -> "User | None":
        """The other member of this user's couple, if any."""
        if self.couple is None:
            return None
        for member in self.couple.users:
            if member.id != self.id:
                return member
        return None

    def wants_email_for_actions(self) -> bool:
        prefs = self.notification_preferences or {}
        return prefs.get("email_for_actions") is not False
