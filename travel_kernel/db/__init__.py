"""Database layer - engine, base classes, and session scope."""

from travel_kernel.db.base import Base, TrackedBase, UTCDateTime, new_id
from travel_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "new_id",
    "session_scope",
]
