"""Engine and `SessionLocal` for the presence and notification stores.

SQLite (local runs and tests) gets a `NullPool`, so every session opens its own
connection and sockets on other threads never share one. Postgres gets a bounded
pool sized for the API process plus its background sweeps.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from qc_realtime.core.config import Settings, settings

SQLITE_OPTIONS: Dict[str, Any] = {
    "connect_args": {"check_same_thread": False},
    "poolclass": NullPool,
}
POOLED_OPTIONS: Dict[str, Any] = {
    "pool_pre_ping": True,
    "pool_size": 10,
    "max_overflow": 5,
    "pool_recycle": 300,
}


def resolve_database_url(config: Settings) -> str:
    """The test database when ``APP_ENV=test``, otherwise the runtime one."""
    return config.get_database_url(use_test=config.environment.lower() == "test")


def build_engine(database_url: Optional[str] = None) -> Engine:
    url = make_url(database_url or resolve_database_url(settings))
    options = SQLITE_OPTIONS if url.get_backend_name() == "sqlite" else POOLED_OPTIONS
    return create_engine(url, **options)


engine: Engine = build_engine()

SessionLocal = sessionmaker(bind=engine, autoflush=False)
