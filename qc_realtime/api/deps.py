"""Shared FastAPI dependencies: the services container, a DB session and lookups."""

from __future__ import annotations

from typing import Iterator

from fastapi import Depends
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from qc_realtime.core.container import RealtimeServices
from qc_realtime.modules.users.models import Couple, User
from qc_realtime.modules.users.repository import UserRepository


def get_services(connection: HTTPConnection) -> RealtimeServices:
    return connection.app.state.services


def get_db(services: RealtimeServices = Depends(get_services)) -> Iterator[Session]:
    """Yield a session from the container's factory with guaranteed cleanup."""
    with services.session() as db:
        yield db


def get_user(user_id: int, db: Session = Depends(get_db)) -> User:
    return UserRepository(db).get_user_or_404(user_id)


def get_couple(couple_id: int, db: Session = Depends(get_db)) -> Couple:
    return UserRepository(db).get_couple_or_404(couple_id)
