"""Authentication and authorization dependencies."""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Header, Request

from src.theaterpos.api.dependencies.services import AuthServiceDep, TenantAuthorizerDep
from src.theaterpos.core.exceptions import ApiError, ErrorCode
from src.theaterpos.core.logging import bind_user_context
from src.theaterpos.core.security import Principal, extract_bearer
from src.theaterpos.services.auth_service import AuthContext


async def get_auth_context(
    request: Request,
    auth_service: AuthServiceDep,
    authorization: Annotated[str | None, Header()] = None,
) -> AuthContext:
    """Validate the bearer token and its session.

    Token shape, signature, session state and the caller's own theater are
    all checked by AuthService.authenticate; its errors carry their codes.
    """
    context = await auth_service.authenticate(extract_bearer(authorization))
    principal = context.principal
    bind_user_context(principal.user_id, principal.tenant_id, principal.username)
    request.state.principal = principal
    return context


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]


async def get_current_principal(context: CurrentAuth) -> Principal:
    return context.principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def require_super_admin(principal: CurrentPrincipal) -> Principal:
    """Require super_admin."""
    if not principal.is_super_admin:
        raise ApiError(ErrorCode.INSUFFICIENT_PERMISSIONS, "Super admin access required")
    return principal


SuperAdmin = Annotated[Principal, Depends(require_super_admin)]


def require_roles(*roles: str) -> Callable[..., Awaitable[Principal]]:
    """Dependency factory: caller's role or user type must be one of `roles`.

    Global administrators always pass.
    """
    allowed = set(roles)

    async def dependency(principal: CurrentPrincipal, authorizer: TenantAuthorizerDep) -> Principal:
        authorizer.require_role(principal, allowed)
        return principal

    return dependency


def require_page(page: str) -> Callable[..., Awaitable[Principal]]:
    """Dependency factory for the page-permission overlay."""

    async def dependency(principal: CurrentPrincipal, authorizer: TenantAuthorizerDep) -> Principal:
        await authorizer.require_page_access(principal, page)
        return principal

    return dependency


TheaterAdmin = Annotated[
    Principal, Depends(require_roles("super_admin", "admin", "theater_admin"))
]
