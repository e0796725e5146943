"""Pydantic schemas for presence snapshots and HTTP payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import PresenceStatus


class PresenceSnapshot(BaseModel):
    """Point-in-time view of a user's presence, as cached and returned to callers."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=False)

    user_id: int
    status: PresenceStatus = PresenceStatus.OFFLINE
    last_seen_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    current_activity: Optional[str] = None
    couple_id: Optional[int] = None
    is_typing: bool = False

    @property
    def is_online(self) -> bool:
        return self.status == PresenceStatus.ONLINE


class CouplePresenceOut(BaseModel):
    couple_id: int
    members: Dict[int, PresenceSnapshot]


class ActivityIn(BaseModel):
    activity_type: str = Field(default="interaction", min_length=1, max_length=64)


class TypingIn(BaseModel):
    context: str = Field(..., min_length=1, max_length=64)
    context_id: str = Field(..., min_length=1, max_length=128)
