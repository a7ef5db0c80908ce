"""Database engine management."""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.theaterpos.core.config import get_settings

_engine: AsyncEngine | None = None


def _engine_kwargs(database_url: str) -> dict[str, Any]:
    """Pool arguments per backend. SQLite ignores pool sizing."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"timeout": 30}}
    settings = get_settings()
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
    }


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, _record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(database_url: str, **overrides: Any) -> AsyncEngine:
    """Create an async engine for the given URL."""
    kwargs = _engine_kwargs(database_url)
    kwargs.update(overrides)
    engine = create_async_engine(database_url, **kwargs)
    if database_url.startswith("sqlite"):
        _enable_sqlite_foreign_keys(engine)
    return engine


def get_engine() -> AsyncEngine:
    """Get or create the database engine singleton."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_settings().database_url)
    return _engine


def set_engine(engine: AsyncEngine | None) -> None:
    """Replace the engine singleton. For testing only."""
    global _engine
    _engine = engine


async def dispose_engine() -> None:
    """Dispose the database engine. Call during shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None
