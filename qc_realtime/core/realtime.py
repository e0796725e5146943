"""Topic-based WebSocket fan-out for presence and notification events.

`ConnectionManager` is the process's `BroadcastSink`. Sockets subscribe to topics
(``user:<id>``, ``couple:<id>``) and `publish(topic, payload)` sends to every local
subscriber. When Redis is configured the payload is also mirrored on a pub/sub
channel so other API instances can forward it to their own sockets.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket, status

from qc_realtime.core.cache.redis_cache import RedisCache

logger = logging.getLogger("qc_realtime.realtime")


class BroadcastSink(ABC):
    """Fire-and-forget publish/subscribe fan-out by topic."""

    @abstractmethod
    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        ...


class ConnectionManager(BroadcastSink):
    """Tracks active WebSocket connections per topic and broadcasts to them.

    A small per-user connection limit prevents runaway socket creation from a
    single client.
    """

    def __init__(
        self,
        *,
        cache: Optional[RedisCache] = None,
        channel_prefix: str = "realtime",
        max_connections_per_user: int = 5,
    ) -> None:
        self.subscriptions: Dict[str, List[WebSocket]] = {}
        self.connection_counts: Dict[int, int] = {}
        self._topics_by_socket: Dict[WebSocket, Set[str]] = {}
        self._lock = asyncio.Lock()
        self.cache = cache
        self.channel_prefix = channel_prefix
        self.max_connections_per_user = max_connections_per_user
        self.instance_id = uuid.uuid4().hex
        self._listener: Optional[asyncio.Task] = None

    # ------------------------------------------------------------ connections
    async def connect(self, websocket: WebSocket, user_id: int, topics: List[str]) -> bool:
        """Accept a socket and subscribe it to `topics`; False if over the per-user cap."""
        await websocket.accept()
        async with self._lock:
            if self.connection_counts.get(user_id, 0) >= self.max_connections_per_user:
                await websocket.close(
                    code=status.WS_1008_POLICY_VIOLATION,
                    reason="socket limit exceeded",
                )
                logger.warning(
                    "WebSocket connection rejected for user %s (limit=%s)",
                    user_id,
                    self.max_connections_per_user,
                )
                return False

            for topic in topics:
                self.subscriptions.setdefault(topic, []).append(websocket)
            self._topics_by_socket[websocket] = set(topics)
            self.connection_counts[user_id] = self.connection_counts.get(user_id, 0) + 1
            logger.info(
                "WebSocket connected for user %s (connections=%s, topics=%s)",
                user_id,
                self.connection_counts[user_id],
                topics,
            )
        return True

    async def disconnect(self, websocket: WebSocket, user_id: int) -> None:
        """Unsubscribe a socket from all its topics."""
        async with self._lock:
            self._drop_socket(websocket)
            remaining = max(self.connection_counts.get(user_id, 1) - 1, 0)
            if remaining:
                self.connection_counts[user_id] = remaining
            else:
                self.connection_counts.pop(user_id, None)
        logger.info(
            "WebSocket disconnected for user %s (remaining=%s)", user_id, remaining
        )

    def _drop_socket(self, websocket: WebSocket) -> None:
        for topic in self._topics_by_socket.pop(websocket, set()):
            sockets = self.subscriptions.get(topic, [])
            if websocket in sockets:
                sockets.remove(websocket)
            if not sockets:
                self.subscriptions.pop(topic, None)

    def subscriber_count(self, topic: str) -> int:
        return len(self.subscriptions.get(topic, []))

    # --------------------------------------------------------------- publish
    async def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        await self.send_local(topic, payload)
        if self.cache is not None:
            await self.cache.publish(
                self._channel(topic),
                {"origin": self.instance_id, "topic": topic, "payload": payload},
            )

    async def send_local(self, topic: str, payload: Dict[str, Any]) -> None:
        """Send a payload to every socket in this process subscribed to `topic`."""
        sockets = list(self.subscriptions.get(topic, []))
        if not sockets:
            return

        broken: List[WebSocket] = []
        for connection in sockets:
            try:
                await connection.send_json(payload)
            except Exception as exc:
                logger.error("Error sending message on %s: %s", topic, exc)
                broken.append(connection)

        if broken:
            async with self._lock:
                for connection in broken:
                    self._drop_socket(connection)

    def _channel(self, topic: str) -> str:
        return f"{self.channel_prefix}:{topic}"

    # ------------------------------------------------------- redis mirroring
    async def start_listener(self) -> None:
        """Forward pub/sub messages published by other instances to local sockets."""
        if self.cache is None or not self.cache.enabled or self._listener is not None:
            return
        self._listener = asyncio.create_task(self._listen())

    async def stop_listener(self) -> None:
        if self._listener is None:
            return
        self._listener.cancel()
        try:
            await self._listener
        except asyncio.CancelledError:
            pass
        self._listener = None

    async def _listen(self) -> None:
        pubsub = self.cache.redis.pubsub()
        await pubsub.psubscribe(f"{self.channel_prefix}:*")
        try:
            async for message in pubsub.listen():
                if message.get("type") != "pmessage":
                    continue
                try:
                    envelope = json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning("Dropping malformed realtime message: %r", message)
                    continue
                if envelope.get("origin") == self.instance_id:
                    continue
                await self.send_local(envelope["topic"], envelope["payload"])
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Realtime pub/sub listener stopped: %s", exc)
        finally:
            await pubsub.punsubscribe()
            close = getattr(pubsub, "aclose", None) or pubsub.close
            await close()

    def metrics(self) -> dict:
        """Return a snapshot suitable for logging/metrics exporters."""
        return {
            "active_users": len(self.connection_counts),
            "connection_counts": dict(self.connection_counts),
            "topics": {topic: len(sockets) for topic, sockets in self.subscriptions.items()},
        }


__all__ = ["BroadcastSink", "ConnectionManager"]
