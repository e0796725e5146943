"""Email delivery utilities for notifications.

`CeleryEmailSink.enqueue` only hands the notification id to a Celery task; the task
renders the message and sends it through FastAPI-Mail out of process. An unreachable
broker surfaces as `DeliveryException` so the dispatcher records the failure.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from html import escape

from fastapi_mail import MessageSchema
from kombu.exceptions import OperationalError

from qc_realtime.core.config import get_mail_client, settings
from qc_realtime.core.exceptions import DeliveryException

from .common import logger


class EmailSink(ABC):
    @abstractmethod
    def enqueue(self, notification) -> None:
        ...


class CeleryEmailSink(EmailSink):
    def enqueue(self, notification) -> None:
        from qc_realtime.celery_worker import send_notification_email

        try:
            send_notification_email.delay(notification.id)
        except OperationalError as exc:
            raise DeliveryException("email", f"broker unavailable ({exc})") from exc
        logger.info("Queued email for notification %s", notification.id)


def build_notification_email(notification, user) -> MessageSchema:
    """Render an action-required notification into an HTML email."""
    subject = f"{settings.SITE_NAME}: {notification.title}"
    body = f"""
    <div style="font-family: Arial, sans-serif;">
        <h2>{escape(notification.title)}</h2>
        <p>{escape(notification.body)}</p>
    </div>
    """
    return MessageSchema(
        subject=subject, recipients=[user.email], body=body, subtype="html"
    )


async def send_email_notification(message: MessageSchema) -> bool:
    """
    Send an email using FastAPI-Mail. Acts as a no-op in test/dev without credentials.
    """
    if settings.environment.lower() == "test" or os.getenv(
        "DISABLE_EXTERNAL_NOTIFICATIONS"
    ) == "1":
        logger.info("Email sending skipped in test environment.")
        return False

    if not settings.mail_username or not settings.mail_password:
        logger.info(
            "Mail credentials are not configured; skipping send for recipients %s",
            getattr(message, "recipients", []),
        )
        return False

    await get_mail_client().send_message(message)
    logger.info("Email notification sent successfully")
    return True


__all__ = [
    "EmailSink",
    "CeleryEmailSink",
    "build_notification_email",
    "send_email_notification",
]
