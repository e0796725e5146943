"""In-memory collaborators for the realtime engine.

The manual scheduler keeps its own clock: callbacks fire only from `advance()`, so
timer behavior can be asserted without sleeping.
"""

import inspect
from typing import Any, Dict, List, Optional, Tuple

from qc_realtime.core.cache import PresenceCache
from qc_realtime.core.exceptions import DeliveryException
from qc_realtime.core.realtime import BroadcastSink
from qc_realtime.core.scheduling import Scheduler, TimerHandle
from qc_realtime.modules.notifications.email import EmailSink
from qc_realtime.modules.notifications.push import PushSink
from qc_realtime.modules.notifications.retry import JobRunner


class RecordingBroadcaster(BroadcastSink):
    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def publish(self, topic, payload):
        self.events.append((topic, payload))

    def on_topic(self, topic):
        return [payload for event_topic, payload in self.events if event_topic == topic]

    def of_type(self, event_type):
        return [
            (topic, payload)
            for topic, payload in self.events
            if payload.get("type") == event_type
        ]


class FailingBroadcaster(RecordingBroadcaster):
    """Records the attempt, then fails like a dropped socket."""

    async def publish(self, topic, payload):
        await super().publish(topic, payload)
        raise DeliveryException("broadcast", "socket closed")


class ManualTimerHandle(TimerHandle):
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True

    @property
    def pending(self):
        return not (self.cancelled or self.fired)


class ManualScheduler(Scheduler):
    def __init__(self):
        self.now = 0.0
        self.handles: List[ManualTimerHandle] = []

    def call_later(self, delay, callback):
        handle = ManualTimerHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending_handles(self):
        return [handle for handle in self.handles if handle.pending]

    async def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due callbacks in due order."""
        target = self.now + seconds
        while True:
            due = sorted(
                (h for h in self.handles if h.pending and h.due <= target),
                key=lambda h: h.due,
            )
            if not due:
                break
            handle = due[0]
            self.now = max(self.now, handle.due)
            handle.fired = True
            result = handle.callback()
            if inspect.isawaitable(result):
                await result
        self.now = target


class RecordingJobRunner(JobRunner):
    def __init__(self):
        self.scheduled: List[Tuple[float, int, int]] = []

    def schedule_once(self, delay, notification_id, attempt):
        self.scheduled.append((delay, notification_id, attempt))


class RecordingPushSink(PushSink):
    def __init__(self):
        self.deliveries: List[Dict[str, Any]] = []

    async def deliver(self, push_token, title, body, data=None):
        self.deliveries.append(
            {"token": push_token, "title": title, "body": body, "data": data or {}}
        )
        return True


class RecordingEmailSink(EmailSink):
    def __init__(self):
        self.enqueued: List[int] = []

    def enqueue(self, notification):
        self.enqueued.append(notification.id)


class InMemoryPresenceCache(PresenceCache):
    def __init__(self):
        self.store: Dict[int, Dict[str, Any]] = {}

    async def get(self, user_id) -> Optional[Dict[str, Any]]:
        return self.store.get(user_id)

    async def set(self, user_id, snapshot):
        self.store[user_id] = snapshot

    async def delete(self, user_id):
        self.store.pop(user_id, None)


class FailingPresenceCache(PresenceCache):
    """Every call fails as if Redis were unreachable."""

    async def get(self, user_id):
        raise ConnectionError("redis unavailable")

    async def set(self, user_id, snapshot):
        raise ConnectionError("redis unavailable")

    async def delete(self, user_id):
        raise ConnectionError("redis unavailable")
