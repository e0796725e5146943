"""Core database access helpers.

Re-exports the engine and `SessionLocal` factory from
`qc_realtime.core.database.session`.
"""

from qc_realtime.models.base import Base

from .session import SessionLocal, build_engine, engine

__all__ = ["Base", "SessionLocal", "engine", "build_engine"]
