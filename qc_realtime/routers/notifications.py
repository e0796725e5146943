"""Notifications router covering sends, read receipts, stats and maintenance."""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from qc_realtime.api.deps import get_db, get_services, get_user
from qc_realtime.core.container import RealtimeServices
from qc_realtime.modules.notifications.schemas import (
    CleanupResult,
    MarkAllReadResult,
    MarkReadIn,
    NotificationBulkCreate,
    NotificationCreate,
    NotificationOut,
    NotificationStats,
)
from qc_realtime.modules.users.models import User
from qc_realtime.modules.users.repository import UserRepository

router = APIRouter(prefix="/notifications", tags=["Notifications"])


class NotificationSendResult(BaseModel):
    sent: bool
    notification: Optional[NotificationOut] = None


@router.post(
    "", response_model=NotificationSendResult, status_code=status.HTTP_201_CREATED
)
async def send_notification(
    payload: NotificationCreate,
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    """Send one notification; `sent` is false when the user disabled the type."""
    user = UserRepository(db).get_user_or_404(payload.user_id)
    notification = await services.dispatcher(db).send(
        user,
        payload.notification_type,
        payload.title,
        payload.body,
        payload.to_options(),
    )
    if notification is None:
        return NotificationSendResult(sent=False)
    return NotificationSendResult(
        sent=True, notification=NotificationOut.from_model(notification)
    )


@router.post(
    "/bulk",
    response_model=List[NotificationOut],
    status_code=status.HTTP_201_CREATED,
)
async def send_bulk_notifications(
    payload: NotificationBulkCreate,
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    users = UserRepository(db).get_users(payload.user_ids)
    created = await services.dispatcher(db).send_bulk(
        users,
        payload.notification_type,
        payload.title,
        payload.body,
        payload.to_options(),
    )
    return [NotificationOut.from_model(notification) for notification in created]


@router.put("/read-all", response_model=MarkAllReadResult)
async def mark_all_notifications_as_read(
    payload: MarkReadIn,
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    user = UserRepository(db).get_user_or_404(payload.user_id)
    updated = await services.dispatcher(db).mark_all_as_read(user)
    return MarkAllReadResult(updated=updated)


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_notification_as_read(
    notification_id: int,
    payload: MarkReadIn,
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    notification = await services.dispatcher(db).mark_as_read(
        notification_id, payload.user_id
    )
    return NotificationOut.from_model(notification)


@router.get("/stats/{user_id}", response_model=NotificationStats)
async def get_user_stats(
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    return await services.dispatcher(db).get_user_stats(user)


@router.get("/metrics", response_model=Dict[str, int])
async def get_delivery_metrics(
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    return await services.dispatcher(db).get_delivery_metrics()


@router.post("/cleanup", response_model=CleanupResult)
async def cleanup_old_notifications(
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    return await services.dispatcher(db).cleanup_old_notifications()
