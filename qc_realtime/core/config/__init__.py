"""Core configuration package.

Exposes cached `settings` so imports are cheap and deterministic.
"""

from .environment import get_mail_client, get_settings
from .settings import CustomConnectionConfig, Settings

settings = get_settings()

__all__ = [
    "CustomConnectionConfig",
    "Settings",
    "settings",
    "get_settings",
    "get_mail_client",
]
