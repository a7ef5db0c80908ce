"""Integration test fixtures for database and HTTP client operations.

Each test gets its own SQLite file, created from the models, so tests never
share rows. Uses polyfactory for type-safe test data generation.
"""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.theaterpos.agent.registration import AgentRegistration
from src.theaterpos.agent.runner import AgentCredentials
from src.theaterpos.agent.supervisor import AgentSupervisor
from src.theaterpos.api.dependencies import get_agent_supervisor, get_notification_bus
from src.theaterpos.core.db import build_engine, init_models, set_engine
from src.theaterpos.main import create_app
from src.theaterpos.models import Admin, Theater, TheaterUser
from src.theaterpos.models.enums import AgentState
from src.theaterpos.services.notification_bus import NotificationBus
from tests.helpers import create_admin, create_staff, create_theater


class IdleAgent:
    """Stands in for a PrintAgent: reports running and waits to be cancelled."""

    def __init__(self, registration: AgentRegistration, credentials: AgentCredentials):
        self.registration = registration
        self.credentials = credentials
        self.shut_down = False

    async def run(self) -> None:
        self.registration.transition(AgentState.RUNNING)
        await asyncio.Event().wait()

    async def shutdown(self) -> None:
        self.shut_down = True


class RecordingSupervisor(AgentSupervisor):
    """Real supervisor over idle agents, remembering every grant it was handed."""

    def __init__(self) -> None:
        super().__init__(agent_factory=IdleAgent, monitor_interval=3600, stale_after=3600)
        self.grants: list[tuple[str, str, str]] = []

    async def start_agent_with_grant(self, grant: str, tenant_id: str, tenant_name: str) -> bool:
        self.grants.append((grant, tenant_id, tenant_name))
        return await super().start_agent_with_grant(grant, tenant_id, tenant_name)


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Fresh SQLite database with every table created."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'theaterpos.db'}")
    set_engine(test_engine)
    await init_models(test_engine)
    yield test_engine
    set_engine(None)
    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Provide an async session for database operations.

    IMPORTANT: The AsyncSession context manager only closes the session on exit;
    it does NOT auto-commit. The helpers in tests.helpers commit for you.
    """
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


@pytest.fixture
async def theater(db_session: AsyncSession) -> Theater:
    return await create_theater(db_session, name="Galaxy Cinemas")


@pytest.fixture
async def other_theater(db_session: AsyncSession) -> Theater:
    return await create_theater(db_session, name="Orion Multiplex")


@pytest.fixture
async def staff(db_session: AsyncSession, theater: Theater) -> TheaterUser:
    """Cashier of `theater`, without a role."""
    return await create_staff(db_session, theater)


@pytest.fixture
async def theater_admin(db_session: AsyncSession, theater: Theater) -> TheaterUser:
    return await create_staff(db_session, theater, user_type="theater_admin")


@pytest.fixture
async def admin(db_session: AsyncSession) -> Admin:
    return await create_admin(db_session)


@pytest.fixture
async def super_admin(db_session: AsyncSession) -> Admin:
    return await create_admin(db_session, super_admin=True)


@pytest.fixture
def bus() -> NotificationBus:
    return NotificationBus(max_queue=10)


@pytest.fixture
async def supervisor() -> AsyncGenerator[RecordingSupervisor]:
    recording = RecordingSupervisor()
    yield recording
    await recording.stop_all()


@pytest.fixture
def app(engine: AsyncEngine, bus: NotificationBus, supervisor: RecordingSupervisor):
    """App wired to the test database, a private bus and an idle-agent supervisor."""
    application = create_app()
    application.dependency_overrides[get_notification_bus] = lambda: bus
    application.dependency_overrides[get_agent_supervisor] = lambda: supervisor
    return application


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
