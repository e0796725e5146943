"""Settings class per ``APP_ENV`` plus the cached accessors built on it.

Only the knobs that differ between deployments live here. Development logs at
DEBUG to a plain console; tests keep logs off disk. Unknown environments fall
back to production settings.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from fastapi_mail import FastMail

from .settings import Settings


class DevelopmentSettings(Settings):
    environment: str = "development"
    log_level: str = "DEBUG"
    use_json_logs: bool = False


class ProductionSettings(Settings):
    environment: str = "production"


class TestSettings(Settings):
    __test__ = False

    environment: str = "test"
    log_dir: Optional[str] = None
    use_json_logs: bool = False


def settings_class_for(app_env: str) -> type[Settings]:
    return {
        "development": DevelopmentSettings,
        "test": TestSettings,
    }.get(app_env.strip().lower(), ProductionSettings)


@lru_cache
def get_settings() -> Settings:
    return settings_class_for(os.getenv("APP_ENV", "production"))()


@lru_cache
def get_mail_client() -> FastMail:
    """FastMail client for the notification email task."""
    return FastMail(get_settings().mail_config)
