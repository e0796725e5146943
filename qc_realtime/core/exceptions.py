"""
Custom Exception Classes for the Application
Provides a unified error handling system with proper HTTP status codes and messages.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AppException(HTTPException):
    """
    Base exception class for all application exceptions.
    Provides consistent error response format.
    """

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(
            status_code=status_code,
            detail={
                "error_code": error_code,
                "message": message,
                "details": self.details,
            },
            headers=headers,
        )


# ==================== Resource Exceptions ====================


class NotFoundException(AppException):
    """Raised when a user, couple or notification does not exist."""

    def __init__(self, resource: str, identifier: Optional[Any] = None):
        message = f"{resource} not found"
        details = {"resource": resource}
        if identifier is not None:
            details["identifier"] = str(identifier)
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="resource_not_found",
            message=message,
            details=details,
        )


# ==================== Validation Exceptions ====================


class ValidationException(AppException):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        error_code: str = "validation_error",
    ):
        details = {"field": field} if field else {}
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            error_code=error_code,
            message=message,
            details=details,
        )


class NotificationValidationError(ValidationException):
    """Raised when send/send_bulk input is malformed. Nothing is persisted."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            field=field,
            error_code="invalid_notification",
        )


# ==================== Delivery Exceptions ====================


class DeliveryException(Exception):
    """A broadcast, push or email sink failed to hand off a notification.

    Never reaches HTTP callers; the dispatcher's delivery guard records it.
    """

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"{channel} delivery failed: {message}")
