"""Cancellable in-process timers.

Typing expiry and batch flushing arm short one-shot callbacks through a `Scheduler`.
Production uses `AsyncioScheduler` (backed by `loop.call_later`); tests substitute a
manual clock that fires callbacks on `advance()`.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Any]


class TimerHandle(ABC):
    """Handle to a single armed callback."""

    @abstractmethod
    def cancel(self) -> None:
        ...

    @property
    @abstractmethod
    def pending(self) -> bool:
        """True until the callback fires or the timer is cancelled."""


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Arm `callback` to run once after `delay` seconds.

        Coroutine functions are awaited as tasks on the running loop.
        """


class _AsyncioTimerHandle(TimerHandle):
    def __init__(self) -> None:
        self._handle: Optional[asyncio.TimerHandle] = None
        self._fired = False

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    @property
    def pending(self) -> bool:
        if self._handle is None or self._fired:
            return False
        return not self._handle.cancelled()


class AsyncioScheduler(Scheduler):
    """Schedules callbacks on the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop
        self._tasks: Set[asyncio.Task] = set()

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        loop = self._get_loop()
        handle = _AsyncioTimerHandle()

        def _fire() -> None:
            handle._fired = True
            try:
                result = callback()
            except Exception:
                logger.exception("Timer callback %r failed", callback)
                return
            if inspect.isawaitable(result):
                task = loop.create_task(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

        handle._handle = loop.call_later(max(delay, 0), _fire)
        return handle

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Timer task failed: %s", exc, exc_info=exc)

    async def shutdown(self) -> None:
        """Cancel in-flight timer tasks (pending call_later handles die with the loop)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
