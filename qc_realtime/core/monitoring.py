"""Prometheus metrics for the realtime engine.

Two groups share the default registry and one ``/metrics`` route:

- HTTP request counters and latencies from the instrumentator, for REST routes
  only (health probes and the socket route are excluded);
- engine gauges read at scrape time: open socket users, live typing
  indicators and low-priority notifications waiting for a batch flush.

The registry is process-wide while apps are not (tests build many), so collectors
are registered once and the gauges read whichever services container was attached
last.
"""

from typing import Callable, Optional

from fastapi import FastAPI
from prometheus_client import Gauge
from prometheus_fastapi_instrumentator import Instrumentator

from qc_realtime.core.container import RealtimeServices

_current: Optional[RealtimeServices] = None
_instrumentator: Optional[Instrumentator] = None


def _reading(read: Callable[[RealtimeServices], int]) -> Callable[[], int]:
    def value() -> int:
        return read(_current) if _current is not None else 0

    return value


def _socket_users(services: RealtimeServices) -> int:
    return len(getattr(services.broadcaster, "connection_counts", {}))


def _register_engine_gauges() -> None:
    Gauge(
        "qc_realtime_socket_users", "Users with at least one open presence socket"
    ).set_function(_reading(_socket_users))
    Gauge(
        "qc_realtime_typing_indicators", "Typing indicators that have not expired"
    ).set_function(_reading(lambda services: services.typing.active_count))
    Gauge(
        "qc_realtime_batch_queue_size", "Notifications waiting for a batch flush"
    ).set_function(_reading(lambda services: services.batch_processor.queue_size))


def setup_monitoring(app: FastAPI, services: RealtimeServices) -> None:
    """Expose ``/metrics`` on ``app`` and point the engine gauges at ``services``."""
    global _current, _instrumentator
    _current = services

    if _instrumentator is None:
        _instrumentator = Instrumentator(
            should_group_status_codes=False,
            should_ignore_untemplated=True,
            excluded_handlers=["/metrics", "/livez", "/readyz", "/ws/.*"],
        )
        # Request middleware registers its collectors, so only the first app gets it.
        _instrumentator.instrument(app)
        _register_engine_gauges()

    _instrumentator.expose(app, include_in_schema=False)
