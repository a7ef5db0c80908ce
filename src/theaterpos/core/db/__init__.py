"""Database utilities - engine, session, readiness."""

from src.theaterpos.core.db.engine import (
    build_engine,
    dispose_engine,
    get_engine,
    set_engine,
)
from src.theaterpos.core.db.session import (
    ensure_database_ready,
    get_session,
    init_models,
    is_database_unavailable,
    ping_database,
)

__all__ = [
    # Engine
    "build_engine",
    "dispose_engine",
    "get_engine",
    "set_engine",
    # Session
    "get_session",
    # Availability
    "ensure_database_ready",
    "is_database_unavailable",
    "ping_database",
    # Schema
    "init_models",
]
