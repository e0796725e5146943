"""Presence router: online/offline transitions, activity, typing and snapshots."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from qc_realtime.api.deps import get_couple, get_db, get_services, get_user
from qc_realtime.core.container import RealtimeServices
from qc_realtime.modules.presence.schemas import (
    ActivityIn,
    CouplePresenceOut,
    PresenceSnapshot,
    TypingIn,
)
from qc_realtime.modules.users.models import Couple, User

router = APIRouter(tags=["Presence"])


@router.post("/presence/{user_id}/online", response_model=PresenceSnapshot)
async def go_online(
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    return await services.tracker(db).go_online(user)


@router.post("/presence/{user_id}/offline", response_model=PresenceSnapshot)
async def go_offline(
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    return await services.tracker(db).go_offline(user)


@router.post("/presence/{user_id}/activity", response_model=PresenceSnapshot)
async def record_activity(
    payload: Optional[ActivityIn] = None,
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    activity_type = payload.activity_type if payload else "interaction"
    return await services.tracker(db).record_activity(user, activity_type)


@router.get("/presence/{user_id}", response_model=PresenceSnapshot)
async def get_presence(
    user: User = Depends(get_user),
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    return await services.tracker(db).get_presence(user)


@router.get("/couples/{couple_id}/presence", response_model=CouplePresenceOut)
async def get_couple_presence(
    couple: Couple = Depends(get_couple),
    db: Session = Depends(get_db),
    services: RealtimeServices = Depends(get_services),
):
    members = await services.tracker(db).get_couple_presence(couple)
    return CouplePresenceOut(couple_id=couple.id, members=members)


@router.post("/presence/{user_id}/typing", status_code=status.HTTP_202_ACCEPTED)
async def start_typing(
    payload: TypingIn,
    user: User = Depends(get_user),
    services: RealtimeServices = Depends(get_services),
):
    await services.typing.start_typing(user, payload.context, payload.context_id)
    return {"is_typing": True}


@router.delete("/presence/{user_id}/typing")
async def stop_typing(
    context: str = Query(..., min_length=1),
    context_id: str = Query(..., min_length=1),
    user: User = Depends(get_user),
    services: RealtimeServices = Depends(get_services),
):
    partner = user.partner
    await services.typing.stop_typing(
        user.id,
        context,
        context_id,
        partner_id=partner.id if partner else None,
        user_name=user.name,
    )
    return {"is_typing": False}
