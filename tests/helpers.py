"""Test helper functions for common data creation patterns."""

from typing import Any

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from structlog.testing import CapturedCall, CapturingLogger

from src.theaterpos.models import Admin, Role, Theater, TheaterUser
from tests.factories import (
    DEFAULT_TEST_PASSWORD,
    DEFAULT_TEST_PIN,
    AdminFactory,
    RoleFactory,
    TheaterFactory,
    TheaterUserFactory,
)

API = "/api/v1"


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def log_calls(cap: CapturingLogger, event: str) -> list[CapturedCall]:
    """Captured calls whose event text equals `event`."""
    return [c for c in cap.calls if c.kwargs.get("event") == event]


async def create_theater(session: AsyncSession, **theater_kwargs) -> Theater:
    """Create and commit a theater.

    Args:
        session: Database session
        **theater_kwargs: Args passed to TheaterFactory

    Returns:
        Created theater
    """
    theater = TheaterFactory.build(**theater_kwargs)
    session.add(theater)
    await session.commit()
    return theater


async def create_role(session: AsyncSession, theater: Theater, pages: list[str], **kwargs) -> Role:
    """Create a role granting access to `pages`."""
    role = RoleFactory.build(
        tenant_id=theater.id,
        permissions=[{"page": page, "hasAccess": True} for page in pages],
        **kwargs,
    )
    session.add(role)
    await session.commit()
    return role


async def create_staff(
    session: AsyncSession,
    theater: Theater,
    role: Role | None = None,
    **user_kwargs,
) -> TheaterUser:
    """Create a theater staff account with the default password and PIN.

    Args:
        session: Database session
        theater: Theater the account belongs to
        role: Optional role for the page-permission overlay
        **user_kwargs: Additional args passed to TheaterUserFactory

    Returns:
        Created user
    """
    user = TheaterUserFactory.build(
        tenant_id=theater.id,
        role_id=role.id if role else None,
        **user_kwargs,
    )
    session.add(user)
    await session.commit()
    return user


async def create_admin(session: AsyncSession, super_admin: bool = False, **kwargs) -> Admin:
    admin = AdminFactory.super_admin(**kwargs) if super_admin else AdminFactory.build(**kwargs)
    session.add(admin)
    await session.commit()
    return admin


async def login_admin(
    client: AsyncClient, email: str, password: str = DEFAULT_TEST_PASSWORD
) -> dict[str, Any]:
    """Password step for a global administrator. Returns the token response body."""
    response = await client.post(f"{API}/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


async def start_staff_login(
    client: AsyncClient, username: str, password: str = DEFAULT_TEST_PASSWORD
) -> dict[str, Any]:
    """Password step for theater staff. Returns the pendingAuth envelope."""
    response = await client.post(
        f"{API}/auth/login", json={"username": username, "password": password}
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["isPinRequired"] is True
    return body["pendingAuth"]


async def submit_pin(
    client: AsyncClient, pending: dict[str, Any], pin: str = DEFAULT_TEST_PIN
):
    return await client.post(
        f"{API}/auth/validate-pin",
        json={
            "userId": pending["userId"],
            "tenantId": pending["tenantId"],
            "loginUsername": pending["loginUsername"],
            "ephemeralSecret": pending["ephemeralSecret"],
            "pin": pin,
        },
    )


async def login_staff(
    client: AsyncClient,
    username: str,
    password: str = DEFAULT_TEST_PASSWORD,
    pin: str = DEFAULT_TEST_PIN,
) -> dict[str, Any]:
    """Both login steps. Returns the token response body."""
    pending = await start_staff_login(client, username, password)
    response = await submit_pin(client, pending, pin)
    assert response.status_code == 200, response.text
    return response.json()


def order_payload(tenant_id: Any, **overrides) -> dict[str, Any]:
    """A cash order for two popcorns at 100.00 each."""
    payload: dict[str, Any] = {
        "tenantId": str(tenant_id),
        "items": [{"name": "Popcorn", "quantity": 2, "unitPrice": "100.00"}],
        "customer": {"phone": "9876543210", "seat": "A1", "screen": "1"},
        "paymentMethod": "cash",
        "source": "pos",
    }
    payload.update(overrides)
    return payload
