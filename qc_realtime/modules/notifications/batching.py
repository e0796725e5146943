"""Rate-limited drip queue for low-priority notifications.

Up to `batch_size` notifications are delivered per `flush_seconds` window, in FIFO
order. At most one flush timer is armed at a time.
"""

from __future__ import annotations

from collections import deque
from typing import Awaitable, Callable, Deque, List, Optional

from qc_realtime.core.scheduling import Scheduler, TimerHandle

from .common import logger

DeliverById = Callable[[int], Awaitable[object]]


class BatchProcessor:
    """Batch processor for notifications."""

    def __init__(
        self,
        scheduler: Scheduler,
        deliver: DeliverById,
        *,
        batch_size: int = 10,
        flush_seconds: float = 2.0,
    ) -> None:
        self.scheduler = scheduler
        self.deliver = deliver
        self.batch_size = batch_size
        self.flush_seconds = flush_seconds
        self._queue: Deque[int] = deque()
        self._timer: Optional[TimerHandle] = None

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None and self._timer.pending

    def add(self, notification_id: int) -> None:
        was_empty = not self._queue
        self._queue.append(notification_id)
        if was_empty:
            self._arm()

    async def process_batch(self) -> List[int]:
        """Deliver up to `batch_size` queued notifications; returns their ids."""
        if self.timer_pending:
            self._timer.cancel()
        self._timer = None

        batch: List[int] = []
        while self._queue and len(batch) < self.batch_size:
            batch.append(self._queue.popleft())

        for notification_id in batch:
            try:
                await self.deliver(notification_id)
            except Exception as exc:
                logger.error(
                    "Batched delivery of notification %s failed: %s",
                    notification_id,
                    exc,
                )

        if self._queue:
            self._arm()
        return batch

    def _arm(self) -> None:
        if self.timer_pending:
            return
        self._timer = self.scheduler.call_later(self.flush_seconds, self.process_batch)

    def clear(self) -> None:
        if self.timer_pending:
            self._timer.cancel()
        self._timer = None
        self._queue.clear()


__all__ = ["BatchProcessor"]
