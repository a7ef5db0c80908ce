"""Database session management and availability checks."""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel

from src.theaterpos.core.db.engine import get_engine
from src.theaterpos.core.exceptions import DatabaseNotReadyError
from src.theaterpos.core.logging import get_logger

logger = get_logger(__name__)

_UNAVAILABLE_ERRORS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    ConnectionError,
    TimeoutError,
)


def is_database_unavailable(exc: BaseException) -> bool:
    """Return True if the exception means the database cannot be reached.

    Constraint violations and programming errors are not availability
    problems and return False.
    """
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return True
    return isinstance(exc, OSError)


@asynccontextmanager
async def get_session(engine: AsyncEngine | None = None) -> AsyncGenerator[AsyncSession]:
    """Create a database session.

    Args:
        engine: Optional engine override for testing.

    Yields:
        AsyncSession with expire_on_commit disabled.
    """
    if engine is None:
        engine = get_engine()

    session_factory = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


async def ping_database(engine: AsyncEngine | None = None) -> None:
    """Run SELECT 1. Raises the driver error if the database is down."""
    if engine is None:
        engine = get_engine()
    async with engine.connect() as connection:
        await connection.execute(text("SELECT 1"))


async def ensure_database_ready(
    timeout: float,
    engine: AsyncEngine | None = None,
    initial_delay: float = 0.25,
) -> None:
    """Wait until the database answers, or raise DatabaseNotReadyError.

    Polls with exponential backoff until the deadline passes.
    """
    deadline = time.monotonic() + timeout
    delay = initial_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            await ping_database(engine)
            if attempt > 1:
                logger.info("Database ready", attempts=attempt)
            return
        except Exception as e:
            if not is_database_unavailable(e):
                raise
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning("Database not ready", attempts=attempt, error=str(e))
                raise DatabaseNotReadyError("Database connection not ready") from e
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * 2, 5.0)


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    # Registers every table on SQLModel.metadata
    import src.theaterpos.models  # noqa: F401

    if engine is None:
        engine = get_engine()
    async with engine.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)
