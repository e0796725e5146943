"""Exception handlers that render every HTTP failure in one envelope.

    {"success": false,
     "error": {"code": ..., "message": ..., "details": {...}},
     "timestamp": ..., "path": ...}

Domain errors (`AppException` subclasses) carry their own status and code. Request
validation maps to ``validation_error`` and a failing presence or notification store
maps to ``database_error``.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from sqlalchemy.exc import SQLAlchemyError

from qc_realtime.core.db_defaults import utcnow
from qc_realtime.core.exceptions import AppException

logger = logging.getLogger(__name__)


def error_envelope(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message, "details": details or {}},
            "timestamp": utcnow().isoformat(),
            "path": request.url.path,
        },
    )


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    return [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]


async def handle_app_exception(request: Request, exc: AppException) -> ORJSONResponse:
    # Unknown users and notifications are routine for a realtime client.
    log = logger.info if exc.status_code == status.HTTP_404_NOT_FOUND else logger.warning
    log(
        "%s %s rejected: %s %s",
        request.method,
        request.url.path,
        exc.error_code,
        exc.details,
    )
    return error_envelope(
        request, exc.status_code, exc.error_code, exc.message, exc.details
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> ORJSONResponse:
    errors = _field_errors(exc)
    logger.warning(
        "%s %s invalid payload: %s",
        request.method,
        request.url.path,
        ", ".join(error["field"] or "<body>" for error in errors),
    )
    return error_envelope(
        request,
        status.HTTP_422_UNPROCESSABLE_CONTENT,
        "validation_error",
        "Request validation failed",
        {"errors": errors},
    )


async def handle_database_error(
    request: Request, exc: SQLAlchemyError
) -> ORJSONResponse:
    logger.error(
        "Store failure on %s %s (%s)",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc_info=exc,
    )
    return error_envelope(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "database_error",
        "A database error occurred. Please try again later.",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppException, handle_app_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(SQLAlchemyError, handle_database_error)


__all__ = ["error_envelope", "register_exception_handlers"]
