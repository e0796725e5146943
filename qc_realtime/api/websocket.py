"""WebSocket endpoint for live presence.

Behavior:
- On connect, looks up the user, subscribes the socket to ``user:<id>`` and
  ``couple:<id>`` via ConnectionManager and marks the user online.
- Inbound JSON actions: ``heartbeat`` / ``activity`` record activity, ``typing``
  starts or stops a typing indicator for ``{context, context_id}``.
- When the last socket of a user disconnects the user goes offline.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from qc_realtime.api.deps import get_services
from qc_realtime.core.container import RealtimeServices
from qc_realtime.core.db_defaults import utcnow
from qc_realtime.core.realtime import ConnectionManager
from qc_realtime.modules.presence.common import couple_topic, user_topic
from qc_realtime.modules.users.repository import UserRepository

router = APIRouter()
logger = logging.getLogger(__name__)


async def _handle_message(
    services: RealtimeServices, websocket: WebSocket, user_id: int, message: Dict[str, Any]
) -> None:
    action = message.get("action")
    with services.session() as db:
        user = UserRepository(db).get_user(user_id)
        if user is None:
            await websocket.send_json({"type": "error", "message": "User not found"})
            return
        tracker = services.tracker(db)

        if action in ("heartbeat", "activity"):
            activity_type = message.get("activity_type") or action
            snapshot = await tracker.record_activity(user, activity_type)
            if action == "heartbeat":
                await websocket.send_json(
                    {
                        "type": "heartbeat_ack",
                        "status": snapshot.status.value,
                        "timestamp": utcnow().isoformat(),
                    }
                )
            return

        if action == "typing":
            context = message.get("context")
            context_id = message.get("context_id")
            if not context or context_id is None:
                await websocket.send_json(
                    {"type": "error", "message": "context and context_id are required"}
                )
                return
            if message.get("is_typing", True):
                await services.typing.start_typing(user, context, context_id)
            else:
                partner = user.partner
                await services.typing.stop_typing(
                    user.id,
                    context,
                    context_id,
                    partner_id=partner.id if partner else None,
                    user_name=user.name,
                )
            return

    await websocket.send_json({"type": "error", "message": f"Unknown action: {action}"})


@router.websocket("/ws/presence/{user_id}")
async def presence_socket(
    websocket: WebSocket,
    user_id: int,
    services: RealtimeServices = Depends(get_services),
):
    manager = services.broadcaster
    if not isinstance(manager, ConnectionManager):
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    with services.session() as db:
        user = UserRepository(db).get_user(user_id)
        if user is None:
            await websocket.close(
                code=status.WS_1008_POLICY_VIOLATION, reason="Unknown user"
            )
            return
        topics = [user_topic(user.id)]
        if user.couple_id:
            topics.append(couple_topic(user.couple_id))

        if not await manager.connect(websocket, user.id, topics):
            return
        try:
            await services.tracker(db).go_online(user)
        except Exception as exc:
            # Connected, but outside the receive loop's cleanup.
            await manager.disconnect(websocket, user.id)
            logger.exception("Could not mark user_id=%s online: %s", user_id, exc)
            await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
            return

    try:
        while True:
            message = await websocket.receive_json()
            if not isinstance(message, dict):
                await websocket.send_json(
                    {"type": "error", "message": "Expected a JSON object"}
                )
                continue
            await _handle_message(services, websocket, user_id, message)
    except WebSocketDisconnect as exc:
        logger.info(
            "WebSocket disconnected for user_id=%s (code=%s)",
            user_id,
            getattr(exc, "code", "unknown"),
        )
    except Exception as exc:
        logger.exception("WebSocket error for user_id=%s: %s", user_id, exc)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        await manager.disconnect(websocket, user_id)
        if not manager.connection_counts.get(user_id):
            with services.session() as db:
                user = UserRepository(db).get_user(user_id)
                if user is not None:
                    await services.tracker(db).go_offline(user)


__all__ = ["router"]
