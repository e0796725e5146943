from .timers import AsyncioScheduler, Scheduler, TimerCallback, TimerHandle

__all__ = ["AsyncioScheduler", "Scheduler", "TimerCallback", "TimerHandle"]
