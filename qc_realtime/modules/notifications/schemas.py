"""Pydantic schemas dedicated to the notifications domain."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SendOptions(BaseModel):
    """Optional knobs for `send`/`send_bulk`.

    `priority` is validated by the dispatcher so bad values raise
    `NotificationValidationError` rather than a schema error.
    """

    priority: str = "normal"
    data: Dict[str, Any] = Field(default_factory=dict)
    couple_id: Optional[int] = None
    deliver_at: Optional[datetime] = None


class NotificationBase(BaseModel):
    notification_type: str
    title: str
    body: str
    priority: str = "normal"
    data: Dict[str, Any] = Field(default_factory=dict)
    deliver_at: Optional[datetime] = None

    def to_options(self, couple_id: Optional[int] = None) -> SendOptions:
        return SendOptions(
            priority=self.priority,
            data=self.data,
            couple_id=couple_id,
            deliver_at=self.deliver_at,
        )


class NotificationCreate(NotificationBase):
    user_id: int


class NotificationBulkCreate(NotificationBase):
    user_ids: List[int] = Field(..., min_length=1)


class NotificationOut(BaseModel):
    id: int
    user_id: int
    couple_id: Optional[int] = None
    notification_type: str
    title: str
    body: str
    priority: str
    data: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("notification_metadata", "metadata"),
    )
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    @classmethod
    def from_model(cls, notification) -> "NotificationOut":
        priority = notification.priority
        return cls(
            id=notification.id,
            user_id=notification.user_id,
            couple_id=notification.couple_id,
            notification_type=notification.notification_type,
            title=notification.title,
            body=notification.body,
            priority=getattr(priority, "value", priority),
            data=notification.data or {},
            metadata=notification.notification_metadata or {},
            is_read=notification.is_read,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class MarkReadIn(BaseModel):
    user_id: int


class NotificationStats(BaseModel):
    total: int
    unread: int
    high_priority_unread: int
    today: int
    this_week: int
    by_type: Dict[str, int]
    average_read_time: float


class CleanupResult(BaseModel):
    deleted: int
    archived: int


class MarkAllReadResult(BaseModel):
    updated: int
