"""Request logging middleware.

Adds a per-request UUID, binds it into the logging contextvars and logs method,
path, status and latency once the response is produced.
"""

import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from qc_realtime.core.logging_config import bind_request_context, reset_request_context

logger = logging.getLogger("qc_realtime.requests")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests/responses with timing and a request id header."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        tokens = bind_request_context(request_id=request_id)

        start_time = time.perf_counter()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            status_code = response.status_code if response else 500
            log = logger.warning if status_code >= 500 else logger.info
            log(
                "%s %s -> %s (%.1f ms)",
                request.method,
                request.url.path,
                status_code,
                duration_ms,
            )
            reset_request_context(tokens)

        response.headers["X-Request-ID"] = request_id
        return response


__all__ = ["LoggingMiddleware"]
