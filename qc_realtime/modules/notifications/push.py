"""Firebase Cloud Messaging push sink.

Push is best-effort: failures are logged and reported as ``False``, never raised.
When Firebase is not configured the sink stays disabled and skips every send.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from firebase_admin import credentials, initialize_app, messaging

logger = logging.getLogger("qc_realtime.notifications.push")


def initialize_firebase(project_id: Optional[str], private_key: Optional[str]) -> bool:
    """Initialize Firebase using service account credentials from settings.

    Returns True on successful bootstrap; returns False and logs when credentials are
    absent/invalid so the rest of the engine keeps running without push.
    """
    if not project_id or not private_key:
        logger.info("Firebase credentials not configured; push notifications disabled.")
        return False
    try:
        cred = credentials.Certificate(
            {
                "type": "service_account",
                "project_id": project_id,
                "private_key": private_key,
                "client_email": f"firebase-adminsdk@{project_id}.iam.gserviceaccount.com",
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        )
        initialize_app(cred, {"projectId": project_id})
        logger.info("Firebase initialized successfully")
        return True
    except ValueError as e:
        # Raised when the default app already exists in this process.
        logger.info(f"Firebase already initialized: {str(e)}")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Firebase: {str(e)}")
        return False


class PushSink(ABC):
    @abstractmethod
    async def deliver(
        self,
        push_token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None,
    ) -> bool:
        ...


class FirebasePushSink(PushSink):
    def __init__(self, enabled: bool = False) -> None:
        self.enabled = enabled

    async def deliver(
        self,
        push_token: str,
        title: str,
        body: str,
        data: Optional[Dict[str, str]] = None,
    ) -> bool:
        if not self.enabled:
            logger.debug("Push skipped (Firebase disabled)")
            return False

        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data={key: str(value) for key, value in (data or {}).items()},
            token=push_token,
        )
        try:
            await asyncio.to_thread(messaging.send, message)
        except Exception as exc:
            logger.error("Error sending push notification: %s", exc)
            return False
        return True


__all__ = ["PushSink", "FirebasePushSink", "initialize_firebase"]
