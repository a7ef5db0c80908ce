"""Authentication endpoints - password step, PIN step, session lifecycle."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Header
from slowapi.util import get_remote_address
from starlette.requests import Request

from src.theaterpos.agent.supervisor import autostart_agent
from src.theaterpos.api.dependencies import (
    AgentSupervisorDep,
    AuthServiceDep,
    CurrentAuth,
)
from src.theaterpos.core.logging import get_logger
from src.theaterpos.core.rate_limit import limiter
from src.theaterpos.core.security import extract_bearer
from src.theaterpos.schemas.auth import (
    AgentTokenRequest,
    CheckSessionResponse,
    LoginRequest,
    LogoutResponse,
    PinRequiredResponse,
    RefreshRequest,
    TokenResponse,
    ValidatePinRequest,
)
from src.theaterpos.schemas.user import UserRead

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _client_info(request: Request) -> tuple[str | None, str | None]:
    return request.headers.get("user-agent"), get_remote_address(request)


@router.post(
    "/login",
    response_model=TokenResponse | PinRequiredResponse,
    responses={
        200: {"description": "Session tokens, or a PIN challenge for theater staff"},
        401: {"description": "Invalid credentials"},
        403: {"description": "Theater inactive"},
        503: {"description": "Database not ready"},
    },
)
@limiter.limit("10/minute")
async def login(
    request: Request, login_data: LoginRequest, service: AuthServiceDep
) -> TokenResponse | PinRequiredResponse:
    """Password step.

    Global administrators receive tokens directly. Theater staff receive
    `pendingAuth`, which the PIN step turns into a session.
    """
    user_agent, ip_address = _client_info(request)
    return await service.login(
        login_data.identifier, login_data.password, user_agent, ip_address
    )


@router.post(
    "/validate-pin",
    response_model=TokenResponse,
    responses={
        401: {"description": "Invalid PIN or expired login"},
        403: {"description": "Theater inactive"},
        503: {"description": "Database not ready"},
    },
)
@limiter.limit("10/minute")
async def validate_pin(
    request: Request,
    pin_data: ValidatePinRequest,
    background_tasks: BackgroundTasks,
    service: AuthServiceDep,
    supervisor: AgentSupervisorDep,
) -> TokenResponse:
    """PIN step. Opens the session, replacing any earlier one.

    The theater's print agent is started after the response is sent.
    """
    user_agent, ip_address = _client_info(request)
    result = await service.validate_pin(
        pin_data.user_id,
        pin_data.tenant_id,
        pin_data.pin,
        ephemeral_secret=pin_data.ephemeral_secret,
        user_agent=user_agent,
        ip_address=ip_address,
        mint_agent_grant=not supervisor.is_agent_running(pin_data.tenant_id),
    )
    if result.agent_grant:
        background_tasks.add_task(
            autostart_agent, supervisor, result.agent_grant, result.tenant_id, result.tenant_name
        )
    return result.tokens


@router.post(
    "/refresh",
    response_model=TokenResponse,
    responses={401: {"description": "Invalid refresh token or session replaced"}},
)
@limiter.limit("30/minute")
async def refresh(
    request: Request, refresh_data: RefreshRequest, service: AuthServiceDep
) -> TokenResponse:
    """Rotate both tokens of the session the refresh token belongs to."""
    return await service.refresh(refresh_data.refresh_token)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    service: AuthServiceDep,
    authorization: Annotated[str | None, Header()] = None,
) -> LogoutResponse:
    """Deactivate the caller's session. Always succeeds."""
    await service.logout(extract_bearer(authorization))
    return LogoutResponse()


@router.get("/check-session", response_model=CheckSessionResponse)
async def check_session(context: CurrentAuth, service: AuthServiceDep) -> CheckSessionResponse:
    """Confirm the session is still the active one and record activity."""
    user = await service.check_session(context)
    return CheckSessionResponse(valid=True, user=user)


@router.get("/validate", response_model=UserRead)
async def validate(context: CurrentAuth, service: AuthServiceDep) -> UserRead:
    """Describe the caller behind a valid access token."""
    return await service.describe(context.principal)


@router.post(
    "/agent-token",
    response_model=TokenResponse,
    responses={401: {"description": "Grant invalid, expired or already used"}},
)
@limiter.limit("10/minute")
async def agent_token(
    request: Request, grant_data: AgentTokenRequest, service: AuthServiceDep
) -> TokenResponse:
    """Exchange a one-time agent grant for the theater's agent session."""
    user_agent, ip_address = _client_info(request)
    return await service.exchange_agent_grant(grant_data.grant, user_agent, ip_address)
