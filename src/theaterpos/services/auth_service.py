"""Token and session authority - login, PIN step, refresh, logout, validation.

Two-step login for theater staff: password first, which yields a pending
PIN challenge, then the PIN, which yields the session. Global
administrators finish after the password step.

Each principal has at most one active session. A new session deletes any
previous active one in the same transaction; the partial unique index on
user_sessions rejects a concurrent second insert, and the loser retries.
"""

import hmac
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.theaterpos.core.config import get_settings
from src.theaterpos.core.db import ensure_database_ready, is_database_unavailable
from src.theaterpos.core.exceptions import (
    AuthError,
    DatabaseNotReadyError,
    ErrorCode,
    TenantAccessError,
)
from src.theaterpos.core.logging import get_logger
from src.theaterpos.core.security import (
    AGENT_USER_TYPE,
    Principal,
    TokenType,
    agent_principal_id,
    canonical_id,
    canonical_pin,
    create_access_token,
    create_agent_grant,
    create_pending_auth_token,
    create_refresh_token,
    decode_token,
    hash_token,
    normalize_token,
    same_id,
)
from src.theaterpos.models import AgentGrant, Theater, UserSession
from src.theaterpos.repositories import (
    AdminRepository,
    AgentGrantRepository,
    RoleRepository,
    SessionRepository,
    TheaterRepository,
    TheaterUserRepository,
)
from src.theaterpos.schemas.auth import PendingAuth, PinRequiredResponse, TokenResponse
from src.theaterpos.schemas.user import UserRead
from src.theaterpos.services.user_resolver import UserResolver, theater_user_principal

logger = get_logger(__name__)

MAX_SESSION_ATTEMPTS = 3


@dataclass
class PinResult:
    """Outcome of a successful PIN step."""

    tokens: TokenResponse
    tenant_id: str
    tenant_name: str
    agent_grant: str | None = None


@dataclass
class AuthContext:
    """A validated access token and, when the database answered, its session row."""

    principal: Principal
    token: str
    session: UserSession | None

    @property
    def trusted_without_session(self) -> bool:
        return self.session is None


def user_read_from_principal(principal: Principal) -> UserRead:
    """User view built from token claims alone."""
    return UserRead(
        id=principal.user_id,
        username=principal.username,
        role=principal.role,
        user_type=principal.user_type,
        tenant_id=principal.tenant_id,
        role_id=principal.role_id,
    )


class AuthService:
    """Issues, refreshes, validates and revokes sessions."""

    def __init__(
        self,
        session: AsyncSession,
        resolver: UserResolver,
        theater_repo: TheaterRepository,
        admin_repo: AdminRepository,
        user_repo: TheaterUserRepository,
        role_repo: RoleRepository,
        session_repo: SessionRepository,
        grant_repo: AgentGrantRepository,
    ):
        self.session = session
        self.resolver = resolver
        self.theater_repo = theater_repo
        self.admin_repo = admin_repo
        self.user_repo = user_repo
        self.role_repo = role_repo
        self.session_repo = session_repo
        self.grant_repo = grant_repo
        self.settings = get_settings()

    # --- Password and PIN steps ---

    async def login(
        self,
        identifier: str,
        password: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> TokenResponse | PinRequiredResponse:
        """Password step.

        1. Wait for the database (503 DATABASE_NOT_READY past the deadline)
        2. Resolve the identifier and verify the password
        3. Global administrators get a session immediately
        4. Theater staff get a pending PIN challenge, if their theater is active
        """
        await ensure_database_ready(self.settings.database_ready_timeout_seconds)

        match = await self.resolver.resolve(identifier, password)
        if match is None or not match.is_active:
            logger.info("Login failed", reason="invalid_credentials")
            raise AuthError("Invalid username or password")

        principal = match.principal
        if not match.requires_pin:
            try:
                admin_key = UUID(principal.user_id)
                tokens = await self._open_session(
                    principal,
                    user_agent,
                    ip_address,
                    on_attempt=lambda: self.admin_repo.record_login(admin_key),
                )
            except Exception:
                await self.session.rollback()
                raise
            logger.info("Admin logged in", user_id=principal.user_id)
            return tokens

        theater = await self.theater_repo.get_by_id(principal.tenant_id or "")
        if theater is None:
            raise AuthError("Theater not found", code=ErrorCode.THEATER_NOT_FOUND)
        if not theater.is_active:
            raise AuthError("Theater is inactive", code=ErrorCode.THEATER_INACTIVE)

        logger.info("Password accepted, PIN required", user_id=principal.user_id)
        return PinRequiredResponse(
            pending_auth=PendingAuth(
                user_id=principal.user_id,
                login_username=principal.username,
                tenant_id=principal.tenant_id or "",
                ephemeral_secret=create_pending_auth_token(
                    principal.user_id, principal.tenant_id
                ),
            )
        )

    async def validate_pin(
        self,
        user_id: str,
        tenant_id: str,
        pin: str,
        ephemeral_secret: str | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
        mint_agent_grant: bool = True,
    ) -> PinResult:
        """PIN step. Creates the session and, for staff, a one-time agent grant.

        Pass `mint_agent_grant=False` when the theater's agent is already
        running; nobody would exchange the grant.
        """
        await ensure_database_ready(self.settings.database_ready_timeout_seconds)

        self._check_pending_secret(user_id, tenant_id, ephemeral_secret)

        user = await self.user_repo.get_in_tenant(user_id, tenant_id)
        if user is None or not user.is_active:
            raise AuthError("User not found")

        theater = await self.theater_repo.get_by_id(user.tenant_id)
        if theater is None:
            raise AuthError("Theater not found", code=ErrorCode.THEATER_NOT_FOUND)
        if not theater.is_active:
            raise AuthError("Theater is inactive", code=ErrorCode.THEATER_INACTIVE)

        if not hmac.compare_digest(canonical_pin(pin), canonical_pin(user.pin)):
            logger.info("PIN rejected", user_id=str(user.id))
            raise AuthError("Invalid PIN", code=ErrorCode.INVALID_PIN)

        principal = theater_user_principal(user)
        # Plain values: a retried transaction expires loaded rows
        user_key: UUID = user.id
        theater_key: UUID = theater.id
        theater_name = theater.name
        role = await self.role_repo.get_by_id(user.role_id) if user.role_id else None
        user_view = UserRead(
            id=principal.user_id,
            username=principal.username,
            role=principal.role,
            user_type=principal.user_type,
            tenant_id=principal.tenant_id,
            tenant_name=theater.name,
            full_name=user.full_name or None,
            role_id=principal.role_id,
            permissions=list(role.permissions) if role and role.is_active else [],
        )

        try:
            tokens = await self._open_session(
                principal,
                user_agent,
                ip_address,
                user_view=user_view,
                on_attempt=lambda: self.user_repo.record_login(user_key),
            )
        except Exception:
            await self.session.rollback()
            raise

        logger.info("PIN accepted, session opened", user_id=principal.user_id)
        grant = await self._issue_agent_grant(theater_key, principal) if mint_agent_grant else None
        return PinResult(
            tokens=tokens,
            tenant_id=str(theater_key),
            tenant_name=theater_name,
            agent_grant=grant,
        )

    def _check_pending_secret(
        self, user_id: str, tenant_id: str, ephemeral_secret: str | None
    ) -> None:
        if not ephemeral_secret:
            if self.settings.require_pending_auth_secret:
                raise AuthError("Login session expired, sign in again")
            return
        payload = decode_token(ephemeral_secret.strip(), expected_type=TokenType.PENDING_PIN)
        if payload is None:
            raise AuthError("Login session expired, sign in again")
        if not same_id(payload.get("userId"), user_id) or not same_id(
            payload.get("tenantId"), tenant_id
        ):
            raise AuthError("Login session does not match this user")

    # --- Sessions ---

    async def _open_session(
        self,
        principal: Principal,
        user_agent: str | None,
        ip_address: str | None,
        user_view: UserRead | None = None,
        on_attempt: Callable[[], Awaitable[None]] | None = None,
    ) -> TokenResponse:
        """Replace the principal's active session with a new one and commit.

        Delete-then-insert runs in one transaction. If a concurrent login
        wins the race the insert violates the active-session index; the
        transaction is rolled back and the whole step retried, so the
        later attempt ends up as the only active session.
        """
        for attempt in range(1, MAX_SESSION_ATTEMPTS + 1):
            access_token = create_access_token(principal)
            refresh_token, _ = create_refresh_token(principal)
            try:
                replaced = await self.session_repo.delete_active_for_user(principal.user_id)
                self.session_repo.add(
                    UserSession(
                        user_id=principal.user_id,
                        tenant_id=principal.tenant_id,
                        token=access_token,
                        token_hash=hash_token(access_token),
                        refresh_token=refresh_token,
                        refresh_token_hash=hash_token(refresh_token),
                        user_agent=(user_agent or "")[:512] or None,
                        ip_address=ip_address,
                    )
                )
                if on_attempt is not None:
                    await on_attempt()
                await self.session.commit()
            except IntegrityError:
                await self.session.rollback()
                logger.warning(
                    "Concurrent session creation, retrying",
                    user_id=principal.user_id,
                    attempt=attempt,
                )
                if attempt == MAX_SESSION_ATTEMPTS:
                    raise
                continue

            if replaced:
                logger.info(
                    "Previous session replaced",
                    user_id=principal.user_id,
                    replaced_sessions=replaced,
                )
            return TokenResponse(
                token=access_token,
                refresh_token=refresh_token,
                expires_in=self.settings.access_token_expire_minutes * 60,
                user=user_view or user_read_from_principal(principal),
            )
        raise RuntimeError("unreachable")  # pragma: no cover

    async def refresh(
        self,
        raw_refresh_token: str,
        user_agent: str | None = None,
    ) -> TokenResponse:
        """Rotate both tokens of an active session."""
        refresh_token = normalize_token(raw_refresh_token)
        payload = decode_token(refresh_token, expected_type=TokenType.REFRESH)
        if payload is None:
            raise AuthError("Invalid or expired refresh token", code=ErrorCode.TOKEN_INVALID)
        principal = Principal.from_claims(payload)

        try:
            row = await self.session_repo.get_active_by_refresh_hash(hash_token(refresh_token))
        except Exception as e:
            if is_database_unavailable(e):
                raise DatabaseNotReadyError("Database unavailable") from e
            raise
        if row is None or not hmac.compare_digest(
            row.refresh_token_hash, hash_token(refresh_token)
        ):
            raise AuthError("Session no longer active", code=ErrorCode.SESSION_INVALIDATED)

        if principal.tenant_id and not principal.is_global_admin:
            await self.ensure_theater_active(principal.tenant_id)

        access_token = create_access_token(principal)
        new_refresh, _ = create_refresh_token(principal)
        try:
            row.token = access_token
            row.token_hash = hash_token(access_token)
            row.refresh_token = new_refresh
            row.refresh_token_hash = hash_token(new_refresh)
            if user_agent:
                row.user_agent = user_agent[:512]
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Session refreshed", user_id=principal.user_id)
        return TokenResponse(
            token=access_token,
            refresh_token=new_refresh,
            expires_in=self.settings.access_token_expire_minutes * 60,
            user=user_read_from_principal(principal),
        )

    async def logout(self, raw_token: str | None) -> None:
        """Deactivate the session for this token. Never fails."""
        try:
            token = normalize_token(raw_token)
        except AuthError:
            return
        try:
            changed = await self.session_repo.deactivate_by_token_hash(hash_token(token))
            await self.session.commit()
            logger.info("Logged out", sessions_closed=changed)
        except Exception as e:
            logger.warning("Logout could not update the session store", error=str(e))
            try:
                await self.session.rollback()
            except Exception as rollback_error:
                logger.warning("Rollback after logout failure failed", error=str(rollback_error))

    async def authenticate(self, raw_token: str | None) -> AuthContext:
        """Validate an access token against the session store.

        When the database cannot be reached, a cryptographically valid token
        is trusted on its own unless session_check_fail_closed is set.

        Raises:
            AuthError: TOKEN_MISSING, TOKEN_MALFORMED, TOKEN_INVALID,
                SESSION_INVALIDATED or THEATER_INACTIVE.
            DatabaseNotReadyError: database down and fail-closed configured.
        """
        token = normalize_token(raw_token)
        payload = decode_token(token, expected_type=TokenType.ACCESS)
        if payload is None:
            raise AuthError("Invalid or expired token", code=ErrorCode.TOKEN_INVALID)
        principal = Principal.from_claims(payload)
        if not principal.user_id:
            raise AuthError("Invalid or expired token", code=ErrorCode.TOKEN_INVALID)

        try:
            row = await self.session_repo.get_active_by_token_hash(hash_token(token))
            if row is None:
                raise AuthError("Session invalidated", code=ErrorCode.SESSION_INVALIDATED)
            if principal.tenant_id and not principal.is_global_admin:
                await self.ensure_theater_active(principal.tenant_id)
        except (AuthError, TenantAccessError):
            raise
        except Exception as e:
            if not is_database_unavailable(e):
                raise
            if self.settings.session_check_fail_closed:
                raise DatabaseNotReadyError("Database unavailable") from e
            logger.warning(
                "Session store unavailable, trusting token",
                user_id=principal.user_id,
                error=str(e),
            )
            return AuthContext(principal=principal, token=token, session=None)

        return AuthContext(principal=principal, token=token, session=row)

    async def ensure_theater_active(self, tenant_id: str) -> Theater:
        theater = await self.theater_repo.get_by_id(tenant_id)
        if theater is None:
            raise TenantAccessError("Theater not found", code=ErrorCode.THEATER_NOT_FOUND)
        if not theater.is_active:
            raise TenantAccessError("Theater is inactive", code=ErrorCode.THEATER_INACTIVE)
        return theater

    async def check_session(self, context: AuthContext) -> UserRead:
        """Record activity on the session and describe the user."""
        if context.session is not None:
            try:
                await self.session_repo.touch(context.session.id)
                await self.session.commit()
            except Exception as e:
                await self.session.rollback()
                if not is_database_unavailable(e):
                    raise
                logger.warning("Could not record session activity", error=str(e))
        return await self.describe(context.principal)

    async def describe(self, principal: Principal) -> UserRead:
        """Current user view, enriched from the database when it answers."""
        view = user_read_from_principal(principal)
        if principal.is_global_admin or principal.is_agent or not principal.tenant_id:
            return view
        try:
            user = await self.user_repo.get_in_tenant(principal.user_id, principal.tenant_id)
            theater = await self.theater_repo.get_by_id(principal.tenant_id)
            role = await self.role_repo.get_by_id(user.role_id) if user and user.role_id else None
        except Exception as e:
            if not is_database_unavailable(e):
                raise
            return view
        if user is not None:
            view.full_name = user.full_name or None
        if theater is not None:
            view.tenant_name = theater.name
        if role is not None and role.is_active:
            view.permissions = list(role.permissions)
        return view

    # --- Print agent delegation ---

    async def _issue_agent_grant(self, tenant_id: UUID, issued_to: Principal) -> str | None:
        """Mint a one-time grant the supervisor can exchange for agent tokens.

        Failure here never fails the login that triggered it.
        """
        if not self.settings.agent_autostart_enabled:
            return None
        try:
            token, jti, expires_at = create_agent_grant(str(tenant_id), issued_to.user_id)
            self.grant_repo.add(
                AgentGrant(
                    jti=jti,
                    tenant_id=tenant_id,
                    issued_to_user_id=issued_to.user_id,
                    expires_at=expires_at,
                )
            )
            await self.session.commit()
            return token
        except Exception as e:
            await self.session.rollback()
            logger.warning("Could not issue agent grant", tenant_id=str(tenant_id), error=str(e))
            return None

    async def exchange_agent_grant(
        self,
        grant: str,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> TokenResponse:
        """Consume a grant and open the theater's agent session."""
        await ensure_database_ready(self.settings.database_ready_timeout_seconds)

        payload = decode_token(grant.strip(), expected_type=TokenType.AGENT_GRANT)
        if payload is None:
            raise AuthError("Grant invalid or expired", code=ErrorCode.GRANT_INVALID)
        tenant_id = canonical_id(payload.get("tenantId"))
        if tenant_id is None:
            raise AuthError("Grant invalid or expired", code=ErrorCode.GRANT_INVALID)

        try:
            consumed = await self.grant_repo.consume(str(payload.get("jti")))
            # Spent even if the session below fails; grants are single-use
            await self.session.commit()
            if not consumed:
                raise AuthError("Grant already used or expired", code=ErrorCode.GRANT_INVALID)
            theater = await self.ensure_theater_active(tenant_id)
            principal = Principal(
                user_id=agent_principal_id(tenant_id),
                username=f"pos-agent-{theater.order_prefix.lower()}",
                role=AGENT_USER_TYPE,
                user_type=AGENT_USER_TYPE,
                tenant_id=tenant_id,
            )
            user_view = user_read_from_principal(principal)
            user_view.tenant_name = theater.name
            tokens = await self._open_session(principal, user_agent, ip_address, user_view)
        except Exception:
            await self.session.rollback()
            raise

        logger.info("Agent grant exchanged", tenant_id=tenant_id)
        return tokens
