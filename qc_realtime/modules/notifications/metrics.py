"""In-process delivery counters.

Keys are ``<action>_<notification_type>`` plus ``<action>_total``; bulk sends add
their size to ``bulk_sent``. Counters reset with the process.
"""

from __future__ import annotations

from collections import Counter
from typing import Dict


class DeliveryMetrics:
    def __init__(self) -> None:
        self._counters: Counter = Counter()

    def track(self, action: str, notification_type: str) -> None:
        self._counters[f"{action}_{notification_type}"] += 1
        self._counters[f"{action}_total"] += 1

    def track_count(self, action: str, count: int) -> None:
        self._counters[action] += count
        self._counters[f"{action}_total"] += 1

    def get(self, key: str) -> int:
        return self._counters.get(key, 0)

    def snapshot(self) -> Dict[str, int]:
        return dict(self._counters)

    def reset(self) -> None:
        self._counters.clear()


__all__ = ["DeliveryMetrics"]
