"""Application settings loaded from environment with safe fallbacks.

Environment precedence:
- Loads `.env` from the repo root before reading process env vars.
- Booleans go through `_env_flag` so `"0"/"false"` work.
- Redis is optional: when `REDIS_URL` is unset the presence cache runs in no-op mode
  and broadcasts stay in-process.

Key expectations (defaults in parentheses):
- `APP_ENV` controls settings class selection (`production` default).
- Database: `DATABASE_URL` or component parts (`DATABASE_*`), with `_test` suffix enforced in tests.
- Celery: `CELERY_BROKER_URL` / `CELERY_BACKEND_URL` (local Redis).
- Presence timings: `IDLE_TIMEOUT_SECONDS` (120), `STEPPED_AWAY_TIMEOUT_SECONDS` (300),
  `TYPING_TIMEOUT_SECONDS` (3), `PRESENCE_CACHE_TTL` (300).
- Delivery tuning: `BATCH_SIZE` (10), `BATCH_FLUSH_SECONDS` (2),
  `NOTIFICATION_RETRY_DELAYS` (`5,30,120`).
- List settings (`CORS_ORIGINS`, `NOTIFICATION_RETRY_DELAYS`) are comma-separated.
"""

import logging
import os
from pathlib import Path
from typing import Annotated, ClassVar, List, Optional, Tuple

from dotenv import load_dotenv
from fastapi_mail import ConnectionConfig
from pydantic import ConfigDict, EmailStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# (__file__ is qc_realtime/core/config/settings.py, so the repo root is three levels up)
BASE_DIR = Path(__file__).resolve().parents[3]


load_dotenv(BASE_DIR / ".env")

# fastapi-mail treats presence of these flags as truthy; remove to rely on explicit config below.
os.environ.pop("MAIL_TLS", None)
os.environ.pop("MAIL_SSL", None)

logger = logging.getLogger(__name__)


def _env_flag(name: str, *, default: Optional[bool] = False) -> Optional[bool]:
    """
    Helper to parse boolean-like environment variables.
    """
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


class CustomConnectionConfig(ConnectionConfig):
    """FastMail config that ignores extra fields to tolerate lenient env mapping."""

    model_config = ConfigDict(extra="ignore")


class Settings(BaseSettings):
    """Application configuration loaded from environment variables.

    Behavior highlights:
    - Loads `.env` at repo root, then lets process env override.
    - Enforces safe DB URLs (prefers `DATABASE_URL`, ensures `_test` suffix for test DBs).
    - Redis optional: absence keeps presence caching and pub/sub mirroring disabled.
    """

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=str(BASE_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: Optional[str] = os.getenv("DATABASE_URL")
    test_database_url: Optional[str] = os.getenv("TEST_DATABASE_URL")
    database_hostname: Optional[str] = os.getenv("DATABASE_HOSTNAME")
    database_port: str = os.getenv("DATABASE_PORT", "5432")
    database_password: Optional[str] = os.getenv("DATABASE_PASSWORD")
    database_name: Optional[str] = os.getenv("DATABASE_NAME")
    database_username: Optional[str] = os.getenv("DATABASE_USERNAME")
    database_ssl_mode: str = os.getenv("DATABASE_SSL_MODE", "require")
    environment: str = os.getenv("APP_ENV", "production")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_dir: Optional[str] = os.getenv("LOG_DIR", "logs")
    use_json_logs: bool = _env_flag("USE_JSON_LOGS", default=True)
    cors_origins: Annotated[List[str], NoDecode] = []
    SITE_NAME: str = os.getenv("SITE_NAME", "Quality Control")

    mail_username: Optional[str] = os.getenv("MAIL_USERNAME")
    mail_password: Optional[str] = os.getenv("MAIL_PASSWORD")
    mail_from: Optional[EmailStr] = os.getenv("MAIL_FROM")
    mail_port: int = int(os.getenv("MAIL_PORT", 587))
    mail_server: Optional[str] = os.getenv("MAIL_SERVER")

    firebase_api_key: Optional[str] = os.getenv("FIREBASE_API_KEY")
    firebase_project_id: Optional[str] = os.getenv("FIREBASE_PROJECT_ID")

    REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
    REALTIME_REDIS_CHANNEL_PREFIX: str = os.getenv(
        "REALTIME_REDIS_CHANNEL_PREFIX", "realtime"
    )
    CELERY_BROKER_URL: str = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    CELERY_BACKEND_URL: str = os.getenv(
        "CELERY_BACKEND_URL", "redis://localhost:6379/0"
    )

    # Presence engine
    PRESENCE_CACHE_TTL: int = 300
    IDLE_TIMEOUT_SECONDS: int = 120
    STEPPED_AWAY_TIMEOUT_SECONDS: int = 300
    TYPING_TIMEOUT_SECONDS: float = 3.0
    IDLE_SWEEP_INTERVAL_SECONDS: float = 30.0

    # Notification delivery
    BATCH_SIZE: int = 10
    BATCH_FLUSH_SECONDS: float = 2.0
    NOTIFICATION_RETRY_DELAYS: Annotated[Tuple[int, ...], NoDecode] = (5, 30, 120)
    NOTIFICATION_RETENTION_DAYS: int = 30
    NOTIFICATION_ARCHIVE_MAX_DAYS: int = 90

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        env_override = os.getenv("APP_ENV")
        if env_override:
            object.__setattr__(self, "environment", env_override)

        if not self.REDIS_URL:
            logger.warning(
                "REDIS_URL is not set, presence cache and pub/sub mirroring are disabled."
            )

    @field_validator("cors_origins", "NOTIFICATION_RETRY_DELAYS", mode="before")
    @classmethod
    def _split_comma_list(cls, value):
        """Accept `a, b, c` from the environment; lists and tuples pass through."""
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def get_database_url(self, *, use_test: bool = False) -> str:
        """Resolve the SQLAlchemy database URL for runtime or tests.

        Priority: explicit `DATABASE_URL` (or `_test` variant when requested),
        then composed Postgres parts, then `TEST_DATABASE_URL`, finally sqlite fallback.
        """
        if use_test:
            test_url = self.test_database_url or "sqlite:///./test.db"
            if test_url.startswith("sqlite"):
                return test_url
            if "_test" not in test_url:
                raise ValueError(
                    "Test database URL must point to a dedicated test database (contains '_test')."
                )
            return test_url

        if self.database_url:
            return self.database_url

        if (
            self.database_hostname
            and self.database_username
            and self.database_password
            and self.database_name
        ):
            base_url = (
                f"postgresql+psycopg2://{self.database_username}:{self.database_password}"
                f"@{self.database_hostname}:{self.database_port}/{self.database_name}"
            )
            if self.database_ssl_mode:
                return f"{base_url}?sslmode={self.database_ssl_mode}"
            return base_url

        if self.test_database_url:
            return self.test_database_url

        # Fail open to local SQLite so the app can start (health checks) when env vars are missing.
        return "sqlite:///./qc_realtime.db"

    @property
    def redis_url(self) -> Optional[str]:
        return getattr(self, "REDIS_URL", None) or None

    @property
    def mail_config(self) -> ConnectionConfig:
        from_address = self.mail_from or "noreply@example.com"
        config_data = {
            # FastMail requires string fields; fallback to empty strings in test/CI.
            "MAIL_USERNAME": self.mail_username or "",
            "MAIL_PASSWORD": self.mail_password or "",
            "MAIL_FROM": from_address,
            "MAIL_PORT": self.mail_port,
            "MAIL_SERVER": self.mail_server or "",
            "MAIL_FROM_NAME": self.SITE_NAME,
            "MAIL_STARTTLS": True,
            "MAIL_SSL_TLS": False,
            "USE_CREDENTIALS": True,
        }
        return CustomConnectionConfig(**config_data)
