from sqlalchemy.pool import NullPool

from qc_realtime.core.config import Settings
from qc_realtime.core.config.environment import TestSettings
from qc_realtime.core.database.session import build_engine, resolve_database_url


def test_sqlite_engine_opens_a_connection_per_session(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'presence.db'}")

    assert isinstance(engine.pool, NullPool)
    engine.dispose()


def test_test_environment_resolves_the_test_database():
    config = TestSettings(test_database_url="postgresql://u:p@db/qc_test")

    assert resolve_database_url(config) == "postgresql://u:p@db/qc_test"


def test_runtime_environment_resolves_the_runtime_database(monkeypatch):
    monkeypatch.delenv("APP_ENV")
    config = Settings(database_url="postgresql://u:p@db/qc", environment="production")

    assert resolve_database_url(config) == "postgresql://u:p@db/qc"
