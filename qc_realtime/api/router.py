"""Centralized API router registration.

Groups:
- Presence: status transitions, activity, typing, snapshots.
- Notifications: send/bulk send, read receipts, stats, metrics, cleanup.
"""

from fastapi import APIRouter

from qc_realtime.routers import notifications, presence

api_router = APIRouter()
api_router.include_router(presence.router)
api_router.include_router(notifications.router)

__all__ = ["api_router"]
