"""Integration tests for login, the PIN step and the session lifecycle."""

import asyncio

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.theaterpos.core.config import get_settings
from src.theaterpos.core.db import build_engine, get_engine, set_engine
from src.theaterpos.core.security import create_access_token, create_refresh_token, hash_token
from src.theaterpos.models import Admin, AgentGrant, Theater, TheaterUser, UserSession
from src.theaterpos.repositories import SessionRepository
from src.theaterpos.services.user_resolver import theater_user_principal
from tests.factories import DEFAULT_TEST_PIN
from tests.helpers import (
    API,
    auth_headers,
    create_role,
    create_staff,
    login_admin,
    login_staff,
    start_staff_login,
    submit_pin,
)

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


async def count_active_sessions(engine: AsyncEngine, user_id: str) -> int:
    async with AsyncSession(engine) as session:
        return await SessionRepository(session).count_active_for_user(user_id)


class TestStaffLogin:
    async def test_password_step_requires_pin(self, client: AsyncClient, staff: TheaterUser):
        response = await client.post(
            f"{API}/auth/login", json={"username": staff.username, "password": "testpassword123"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["isPinRequired"] is True
        assert "token" not in body
        pending = body["pendingAuth"]
        assert pending["userId"] == str(staff.id)
        assert pending["tenantId"] == str(staff.tenant_id)
        assert pending["loginUsername"] == staff.username
        assert pending["ephemeralSecret"]

    async def test_pin_step_opens_session(
        self, client: AsyncClient, engine: AsyncEngine, staff: TheaterUser, theater: Theater
    ):
        tokens = await login_staff(client, staff.username)

        assert tokens["token"]
        assert tokens["refreshToken"]
        assert tokens["tokenType"] == "bearer"
        assert tokens["user"]["userType"] == "theater_user"
        assert tokens["user"]["tenantId"] == str(theater.id)
        assert tokens["user"]["tenantName"] == theater.name
        assert await count_active_sessions(engine, str(staff.id)) == 1

        response = await client.get(
            f"{API}/auth/check-session", headers=auth_headers(tokens["token"])
        )
        assert response.status_code == 200
        assert response.json()["valid"] is True
        assert response.json()["user"]["id"] == str(staff.id)

    async def test_username_lookup_ignores_case_and_whitespace(
        self, client: AsyncClient, staff: TheaterUser
    ):
        pending = await start_staff_login(client, f"  {staff.username.upper()} ")
        assert pending["userId"] == str(staff.id)

    async def test_wrong_password_rejected(self, client: AsyncClient, staff: TheaterUser):
        response = await client.post(
            f"{API}/auth/login", json={"username": staff.username, "password": "wrong-password"}
        )

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    async def test_unknown_user_rejected_the_same_way(self, client: AsyncClient, engine):
        response = await client.post(
            f"{API}/auth/login", json={"username": "nobody", "password": "testpassword123"}
        )

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    async def test_inactive_account_rejected(
        self, client: AsyncClient, db_session: AsyncSession, theater: Theater
    ):
        user = await create_staff(db_session, theater, is_active=False)

        response = await client.post(
            f"{API}/auth/login", json={"username": user.username, "password": "testpassword123"}
        )

        assert response.status_code == 401

    async def test_missing_identifier_is_a_validation_error(self, client: AsyncClient, engine):
        response = await client.post(f"{API}/auth/login", json={"password": "testpassword123"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_wrong_pin_rejected(self, client: AsyncClient, staff: TheaterUser):
        pending = await start_staff_login(client, staff.username)

        response = await submit_pin(client, pending, pin="9999")

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_PIN"

    async def test_pin_is_trimmed(self, client: AsyncClient, staff: TheaterUser):
        pending = await start_staff_login(client, staff.username)

        response = await submit_pin(client, pending, pin=f" {DEFAULT_TEST_PIN} ")

        assert response.status_code == 200

    async def test_pending_secret_for_other_user_rejected(
        self, client: AsyncClient, db_session: AsyncSession, staff: TheaterUser, theater: Theater
    ):
        other = await create_staff(db_session, theater)
        pending = await start_staff_login(client, staff.username)
        pending["userId"] = str(other.id)

        response = await submit_pin(client, pending)

        assert response.status_code == 401

    async def test_inactive_theater_blocks_login(
        self, client: AsyncClient, db_session: AsyncSession, staff: TheaterUser, theater: Theater
    ):
        theater.is_active = False
        await db_session.commit()

        response = await client.post(
            f"{API}/auth/login", json={"username": staff.username, "password": "testpassword123"}
        )

        assert response.status_code == 403
        assert response.json()["code"] == "THEATER_INACTIVE"

    async def test_permissions_come_from_active_role(
        self, client: AsyncClient, db_session: AsyncSession, theater: Theater
    ):
        role = await create_role(db_session, theater, ["orders", "reports"])
        user = await create_staff(db_session, theater, role=role)

        tokens = await login_staff(client, user.username)

        pages = {entry["page"] for entry in tokens["user"]["permissions"]}
        assert pages == {"orders", "reports"}
        assert tokens["user"]["roleId"] == str(role.id)


class TestAdminLogin:
    async def test_admin_gets_tokens_without_pin(self, client: AsyncClient, admin: Admin):
        tokens = await login_admin(client, admin.email)

        assert tokens["token"]
        assert tokens["user"]["role"] == "admin"
        assert tokens["user"]["tenantId"] is None

    async def test_admin_login_by_username_field(self, client: AsyncClient, admin: Admin):
        response = await client.post(
            f"{API}/auth/login", json={"username": admin.email, "password": "testpassword123"}
        )

        assert response.status_code == 200
        assert "token" in response.json()

    async def test_auth_responses_are_not_cached(self, client: AsyncClient, admin: Admin):
        response = await client.post(
            f"{API}/auth/login", json={"email": admin.email, "password": "testpassword123"}
        )

        assert response.headers["Cache-Control"] == "no-store"


class TestSingleActiveSession:
    async def test_second_login_invalidates_first(
        self, client: AsyncClient, engine: AsyncEngine, staff: TheaterUser
    ):
        first = await login_staff(client, staff.username)
        second = await login_staff(client, staff.username)

        old = await client.get(f"{API}/auth/validate", headers=auth_headers(first["token"]))
        new = await client.get(f"{API}/auth/validate", headers=auth_headers(second["token"]))

        assert old.status_code == 401
        assert old.json()["code"] == "SESSION_INVALIDATED"
        assert new.status_code == 200
        assert await count_active_sessions(engine, str(staff.id)) == 1

    async def test_admin_relogin_invalidates_first(
        self, client: AsyncClient, engine: AsyncEngine, admin: Admin
    ):
        first = await login_admin(client, admin.email)
        await login_admin(client, admin.email)

        response = await client.get(f"{API}/auth/validate", headers=auth_headers(first["token"]))

        assert response.status_code == 401
        assert await count_active_sessions(engine, str(admin.id)) == 1

    async def test_concurrent_session_insert_retries_to_a_single_session(
        self,
        client: AsyncClient,
        engine: AsyncEngine,
        staff: TheaterUser,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """A competing login commits between our delete and our insert."""
        principal = theater_user_principal(staff)
        competitor_token = create_access_token(principal)
        competitor_refresh, _ = create_refresh_token(principal)
        original_delete = SessionRepository.delete_active_for_user
        calls = 0

        async def racing_delete(self: SessionRepository, user_id: str) -> int:
            nonlocal calls
            calls += 1
            if calls == 1:
                async with AsyncSession(engine) as other:
                    other.add(
                        UserSession(
                            user_id=user_id,
                            tenant_id=str(staff.tenant_id),
                            token=competitor_token,
                            token_hash=hash_token(competitor_token),
                            refresh_token=competitor_refresh,
                            refresh_token_hash=hash_token(competitor_refresh),
                        )
                    )
                    await other.commit()
                return 0
            return await original_delete(self, user_id)

        monkeypatch.setattr(SessionRepository, "delete_active_for_user", racing_delete)

        tokens = await login_staff(client, staff.username)

        assert calls == 2
        assert await count_active_sessions(engine, str(staff.id)) == 1
        ours = await client.get(f"{API}/auth/validate", headers=auth_headers(tokens["token"]))
        theirs = await client.get(f"{API}/auth/validate", headers=auth_headers(competitor_token))
        assert ours.status_code == 200
        assert theirs.status_code == 401
        assert theirs.json()["code"] == "SESSION_INVALIDATED"


class TestTokenHandling:
    async def test_missing_token(self, client: AsyncClient, engine):
        response = await client.get(f"{API}/auth/validate")

        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_MISSING"

    @pytest.mark.parametrize("raw", ["null", "undefined", '""', "   "])
    async def test_placeholder_tokens_count_as_missing(self, client: AsyncClient, engine, raw):
        response = await client.get(f"{API}/auth/validate", headers={"Authorization": raw})

        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_MISSING"

    async def test_malformed_token(self, client: AsyncClient, engine):
        response = await client.get(f"{API}/auth/validate", headers=auth_headers("not-a-jwt"))

        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_MALFORMED"

    async def test_bad_signature(self, client: AsyncClient, engine):
        response = await client.get(f"{API}/auth/validate", headers=auth_headers("aaa.bbb.ccc"))

        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_INVALID"

    async def test_quoted_token_accepted(self, client: AsyncClient, staff: TheaterUser):
        tokens = await login_staff(client, staff.username)

        response = await client.get(
            f"{API}/auth/validate", headers={"Authorization": f"Bearer \"{tokens['token']}\""}
        )

        assert response.status_code == 200
        assert response.json()["username"] == staff.username

    async def test_refresh_token_is_not_an_access_token(
        self, client: AsyncClient, staff: TheaterUser
    ):
        tokens = await login_staff(client, staff.username)

        response = await client.get(
            f"{API}/auth/validate", headers=auth_headers(tokens["refreshToken"])
        )

        assert response.status_code == 401

    async def test_theater_deactivated_after_login(
        self, client: AsyncClient, db_session: AsyncSession, staff: TheaterUser, theater: Theater
    ):
        tokens = await login_staff(client, staff.username)
        theater.is_active = False
        await db_session.commit()

        response = await client.get(f"{API}/auth/validate", headers=auth_headers(tokens["token"]))

        assert response.status_code == 403
        assert response.json()["code"] == "THEATER_INACTIVE"

    async def test_error_envelope_carries_request_id(self, client: AsyncClient, engine):
        response = await client.get(
            f"{API}/auth/validate", headers={"X-Request-ID": "3f6b2b0e-5a4d-4c1e-9d0a-1c2b3d4e5f60"}
        )

        body = response.json()
        assert set(body) >= {"error", "code", "request_id"}
        assert body["request_id"] == response.headers["X-Request-ID"]


class TestRefreshAndLogout:
    async def test_refresh_rotates_tokens(self, client: AsyncClient, staff: TheaterUser):
        tokens = await login_staff(client, staff.username)

        response = await client.post(
            f"{API}/auth/refresh", json={"refreshToken": tokens["refreshToken"]}
        )

        assert response.status_code == 200
        rotated = response.json()
        assert rotated["token"] != tokens["token"]
        assert rotated["refreshToken"] != tokens["refreshToken"]
        old = await client.get(f"{API}/auth/validate", headers=auth_headers(tokens["token"]))
        new = await client.get(f"{API}/auth/validate", headers=auth_headers(rotated["token"]))
        assert old.status_code == 401
        assert new.status_code == 200

    async def test_refresh_after_replacement_rejected(
        self, client: AsyncClient, staff: TheaterUser
    ):
        first = await login_staff(client, staff.username)
        await login_staff(client, staff.username)

        response = await client.post(
            f"{API}/auth/refresh", json={"refreshToken": first["refreshToken"]}
        )

        assert response.status_code == 401
        assert response.json()["code"] == "SESSION_INVALIDATED"

    async def test_access_token_cannot_refresh(self, client: AsyncClient, staff: TheaterUser):
        tokens = await login_staff(client, staff.username)

        response = await client.post(f"{API}/auth/refresh", json={"refreshToken": tokens["token"]})

        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_INVALID"

    async def test_logout_ends_session(
        self, client: AsyncClient, engine: AsyncEngine, staff: TheaterUser
    ):
        tokens = await login_staff(client, staff.username)

        response = await client.post(f"{API}/auth/logout", headers=auth_headers(tokens["token"]))

        assert response.status_code == 200
        assert response.json()["success"] is True
        check = await client.get(f"{API}/auth/validate", headers=auth_headers(tokens["token"]))
        assert check.status_code == 401
        assert await count_active_sessions(engine, str(staff.id)) == 0

    async def test_logout_without_token_still_succeeds(self, client: AsyncClient, engine):
        response = await client.post(f"{API}/auth/logout")

        assert response.status_code == 200

    async def test_logout_with_garbage_token_still_succeeds(self, client: AsyncClient, engine):
        response = await client.post(f"{API}/auth/logout", headers=auth_headers("x.y.z"))

        assert response.status_code == 200


class TestDatabaseUnavailable:
    @pytest.fixture
    def database_down(self, engine: AsyncEngine, monkeypatch: pytest.MonkeyPatch):
        """Point the app at a database file that can never be opened."""
        monkeypatch.setattr(get_settings(), "database_ready_timeout_seconds", 0.1)
        working = get_engine()
        broken = build_engine("sqlite+aiosqlite:////nonexistent-dir/theaterpos.db")

        def take_down() -> None:
            set_engine(broken)

        yield take_down
        set_engine(working)

    async def test_login_returns_503(self, client: AsyncClient, staff: TheaterUser, database_down):
        database_down()

        response = await client.post(
            f"{API}/auth/login", json={"username": staff.username, "password": "testpassword123"}
        )

        assert response.status_code == 503
        assert response.json()["code"] == "DATABASE_NOT_READY"

    async def test_valid_token_trusted_while_database_down(
        self, client: AsyncClient, staff: TheaterUser, database_down
    ):
        tokens = await login_staff(client, staff.username)
        database_down()

        response = await client.get(f"{API}/auth/validate", headers=auth_headers(tokens["token"]))

        assert response.status_code == 200
        assert response.json()["id"] == str(staff.id)

    async def test_fail_closed_returns_503(
        self,
        client: AsyncClient,
        staff: TheaterUser,
        database_down,
        monkeypatch: pytest.MonkeyPatch,
    ):
        tokens = await login_staff(client, staff.username)
        monkeypatch.setattr(get_settings(), "session_check_fail_closed", True)
        database_down()

        response = await client.get(f"{API}/auth/validate", headers=auth_headers(tokens["token"]))

        assert response.status_code == 503
        assert response.json()["code"] == "DATABASE_NOT_READY"

    async def test_logout_never_fails(self, client: AsyncClient, staff: TheaterUser, database_down):
        tokens = await login_staff(client, staff.username)
        database_down()

        response = await client.post(f"{API}/auth/logout", headers=auth_headers(tokens["token"]))

        assert response.status_code == 200

    async def test_health_reports_database(self, client: AsyncClient, database_down):
        database_down()

        response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["database"].startswith("unhealthy")


class TestAgentGrant:
    @pytest.fixture(autouse=True)
    def autostart_enabled(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(get_settings(), "agent_autostart_enabled", True)

    async def test_pin_login_starts_theater_agent(
        self, client: AsyncClient, staff: TheaterUser, theater: Theater, supervisor
    ):
        await login_staff(client, staff.username)
        await asyncio.sleep(0.01)

        assert len(supervisor.grants) == 1
        _, tenant_id, tenant_name = supervisor.grants[0]
        assert tenant_id == str(theater.id)
        assert tenant_name == theater.name
        assert supervisor.is_agent_running(str(theater.id))

    async def test_no_second_start_while_agent_running(
        self,
        client: AsyncClient,
        engine: AsyncEngine,
        db_session: AsyncSession,
        theater: Theater,
        supervisor,
    ):
        first = await create_staff(db_session, theater)
        second = await create_staff(db_session, theater)

        await login_staff(client, first.username)
        await asyncio.sleep(0.01)
        await login_staff(client, second.username)
        await asyncio.sleep(0.01)

        assert len(supervisor.grants) == 1
        async with AsyncSession(engine) as session:
            issued = (await session.execute(select(func.count()).select_from(AgentGrant))).scalar()
        assert issued == 1

    async def test_grant_exchanges_once(
        self, client: AsyncClient, staff: TheaterUser, theater: Theater, supervisor
    ):
        await login_staff(client, staff.username)
        grant = supervisor.grants[0][0]

        first = await client.post(f"{API}/auth/agent-token", json={"grant": grant})
        second = await client.post(f"{API}/auth/agent-token", json={"grant": grant})

        assert first.status_code == 200
        agent_user = first.json()["user"]
        assert agent_user["userType"] == "pos_agent"
        assert agent_user["tenantId"] == str(theater.id)
        assert second.status_code == 401
        assert second.json()["code"] == "GRANT_INVALID"

    async def test_agent_session_can_read_print_queue(
        self, client: AsyncClient, staff: TheaterUser, theater: Theater, supervisor
    ):
        await login_staff(client, staff.username)
        exchanged = await client.post(
            f"{API}/auth/agent-token", json={"grant": supervisor.grants[0][0]}
        )
        token = exchanged.json()["token"]

        response = await client.get(
            f"{API}/orders/unprinted",
            params={"tenantId": str(theater.id)},
            headers=auth_headers(token),
        )

        assert response.status_code == 200
        assert response.json() == {"orders": [], "total": 0}

    async def test_access_token_is_not_a_grant(self, client: AsyncClient, staff: TheaterUser):
        tokens = await login_staff(client, staff.username)

        response = await client.post(f"{API}/auth/agent-token", json={"grant": tokens["token"]})

        assert response.status_code == 401
        assert response.json()["code"] == "GRANT_INVALID"
