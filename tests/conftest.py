# ruff: noqa: E402
import itertools
import os
from types import SimpleNamespace

import pytest

# Set testing environment flags before importing the app or settings
os.environ["APP_ENV"] = "test"
os.environ["REDIS_URL"] = ""
os.environ["DISABLE_EXTERNAL_NOTIFICATIONS"] = "1"

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from qc_realtime.core.app_factory import create_app
from qc_realtime.core.config import get_settings
from qc_realtime.core.container import RealtimeServices
from qc_realtime.core.database import build_engine
from qc_realtime.models import Base, Couple, User
from tests.fakes import (
    InMemoryPresenceCache,
    ManualScheduler,
    RecordingBroadcaster,
    RecordingEmailSink,
    RecordingJobRunner,
    RecordingPushSink,
)


@pytest.fixture
def engine(tmp_path):
    """A fresh SQLite database file per test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'qc_realtime_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def presence_cache():
    return InMemoryPresenceCache()


@pytest.fixture
def push_sink():
    return RecordingPushSink()


@pytest.fixture
def email_sink():
    return RecordingEmailSink()


@pytest.fixture
def job_runner():
    return RecordingJobRunner()


@pytest.fixture
def services(
    session_factory,
    scheduler,
    broadcaster,
    presence_cache,
    push_sink,
    email_sink,
    job_runner,
):
    return RealtimeServices(
        settings=get_settings(),
        session_factory=session_factory,
        scheduler=scheduler,
        broadcaster=broadcaster,
        presence_cache=presence_cache,
        push_sink=push_sink,
        email_sink=email_sink,
        job_runner=job_runner,
    )


@pytest.fixture
def session(services):
    with services.session() as db:
        yield db


@pytest.fixture
def tracker(services, session):
    return services.tracker(session)


@pytest.fixture
def dispatcher(services, session):
    return services.dispatcher(session)


@pytest.fixture
def make_user(session):
    counter = itertools.count(1)

    def _make(name=None, couple=None, **kwargs):
        n = next(counter)
        user = User(
            name=name or f"User {n}",
            email=f"user{n}@example.com",
            couple=couple,
            **kwargs,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make


@pytest.fixture
def couple(session, make_user):
    """A couple with two members; Bob is Alice's partner."""
    pair = Couple(name="Alice & Bob")
    session.add(pair)
    session.commit()
    alice = make_user("Alice", couple=pair, push_token="alice-device")
    bob = make_user("Bob", couple=pair)
    session.refresh(pair)
    return SimpleNamespace(couple=pair, alice=alice, bob=bob)


@pytest.fixture
def app(services):
    return create_app(services=services)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
