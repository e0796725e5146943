import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from qc_realtime.core.realtime import ConnectionManager
from qc_realtime.core.scheduling import AsyncioScheduler


@pytest.mark.asyncio
async def test_asyncio_scheduler_runs_sync_and_async_callbacks():
    scheduler = AsyncioScheduler()
    calls = []
    done = asyncio.Event()

    async def async_callback():
        calls.append("async")
        done.set()

    sync_handle = scheduler.call_later(0.01, lambda: calls.append("sync"))
    async_handle = scheduler.call_later(0.02, async_callback)
    assert sync_handle.pending and async_handle.pending

    await asyncio.wait_for(done.wait(), timeout=1)

    assert calls == ["sync", "async"]
    assert sync_handle.pending is False
    assert async_handle.pending is False
    await scheduler.shutdown()


@pytest.mark.asyncio
async def test_cancelled_timer_never_fires():
    scheduler = AsyncioScheduler()
    calls = []

    handle = scheduler.call_later(0.01, lambda: calls.append("fired"))
    handle.cancel()
    await asyncio.sleep(0.05)

    assert calls == []
    assert handle.pending is False


@pytest.mark.asyncio
async def test_failing_callback_is_logged_not_raised(caplog):
    scheduler = AsyncioScheduler()

    def boom():
        raise RuntimeError("expiry exploded")

    scheduler.call_later(0, boom)
    await asyncio.sleep(0.02)

    assert "Timer callback" in caplog.text


def _socket():
    websocket = AsyncMock()
    websocket.send_json = AsyncMock()
    return websocket


@pytest.mark.asyncio
async def test_publish_reaches_topic_subscribers_only():
    manager = ConnectionManager()
    alice, bob = _socket(), _socket()
    await manager.connect(alice, 1, ["user:1", "couple:9"])
    await manager.connect(bob, 2, ["user:2", "couple:9"])

    await manager.publish("user:1", {"type": "new_notification"})
    await manager.publish("couple:9", {"type": "partner_online"})

    assert alice.send_json.await_count == 2
    bob.send_json.assert_awaited_once_with({"type": "partner_online"})
    assert manager.subscriber_count("couple:9") == 2


@pytest.mark.asyncio
async def test_disconnect_unsubscribes_and_drops_counts():
    manager = ConnectionManager()
    websocket = _socket()
    await manager.connect(websocket, 1, ["user:1"])

    await manager.disconnect(websocket, 1)
    await manager.publish("user:1", {"type": "ping"})

    websocket.send_json.assert_not_awaited()
    assert manager.metrics()["active_users"] == 0


@pytest.mark.asyncio
async def test_connection_cap_rejects_extra_sockets():
    manager = ConnectionManager(max_connections_per_user=1)
    first, second = _socket(), _socket()

    assert await manager.connect(first, 1, ["user:1"]) is True
    assert await manager.connect(second, 1, ["user:1"]) is False

    second.close.assert_awaited_once()
    assert manager.subscriber_count("user:1") == 1


@pytest.mark.asyncio
async def test_broken_socket_is_dropped_on_send():
    manager = ConnectionManager()
    healthy, broken = _socket(), _socket()
    broken.send_json.side_effect = RuntimeError("socket closed")
    await manager.connect(healthy, 1, ["couple:3"])
    await manager.connect(broken, 2, ["couple:3"])

    await manager.publish("couple:3", {"type": "status_changed"})

    healthy.send_json.assert_awaited_once()
    assert manager.subscriber_count("couple:3") == 1


@pytest.mark.asyncio
async def test_publish_is_mirrored_to_redis_with_origin():
    cache = AsyncMock()
    manager = ConnectionManager(cache=cache, channel_prefix="qc")

    await manager.publish("user:5", {"type": "typing_indicator"})

    cache.publish.assert_awaited_once_with(
        "qc:user:5",
        {
            "origin": manager.instance_id,
            "topic": "user:5",
            "payload": {"type": "typing_indicator"},
        },
    )


class FakePubSub:
    def __init__(self, messages):
        self.messages = messages
        self.patterns = []
        self.closed = False

    async def psubscribe(self, pattern):
        self.patterns.append(pattern)

    async def punsubscribe(self):
        self.patterns.clear()

    async def listen(self):
        for message in self.messages:
            yield message

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_listener_forwards_foreign_messages_only():
    manager = ConnectionManager(channel_prefix="qc")
    websocket = _socket()
    await manager.connect(websocket, 1, ["user:1"])
    messages = [
        {"type": "psubscribe", "data": 1},
        {
            "type": "pmessage",
            "data": json.dumps(
                {"origin": "other-node", "topic": "user:1", "payload": {"type": "a"}}
            ),
        },
        {
            "type": "pmessage",
            "data": json.dumps(
                {"origin": manager.instance_id, "topic": "user:1", "payload": {"type": "b"}}
            ),
        },
        {"type": "pmessage", "data": "not json"},
    ]
    pubsub = FakePubSub(messages)
    manager.cache = AsyncMock()
    manager.cache.redis.pubsub = lambda: pubsub

    await manager._listen()

    websocket.send_json.assert_awaited_once_with({"type": "a"})
    assert pubsub.closed is True
