"""Tenant authorizer - may this caller act on this theater?

Rules, first match wins:

1. No authenticated caller: AUTH_REQUIRED
2. Global administrator (admin or super_admin): allowed for any theater
3. Requested theater does not exist: THEATER_NOT_FOUND
4. Requested theater is inactive: THEATER_INACTIVE
5. Caller belongs to the requested theater: allowed
6. Otherwise: THEATER_ACCESS_DENIED

Identifiers from tokens, paths and bodies are canonicalised before they are
compared. Page permissions are a second check layered on top.
"""

from typing import Any

from src.theaterpos.core.exceptions import ErrorCode, TenantAccessError
from src.theaterpos.core.logging import get_logger
from src.theaterpos.core.security import Principal, canonical_id, same_id
from src.theaterpos.models import Theater
from src.theaterpos.repositories import RoleRepository, TheaterRepository

logger = get_logger(__name__)


class TenantAuthorizer:
    def __init__(self, theater_repo: TheaterRepository, role_repo: RoleRepository):
        self.theater_repo = theater_repo
        self.role_repo = role_repo

    async def authorize(self, caller: Principal | None, tenant_id: Any) -> Theater | None:
        """Apply the rules above.

        Returns:
            The requested theater. May be None only for global
            administrators asking for a theater that does not exist.

        Raises:
            TenantAccessError: with the code of the first failing rule.
        """
        if caller is None or not caller.user_id:
            raise TenantAccessError("Authentication required", code=ErrorCode.AUTH_REQUIRED)

        requested = canonical_id(tenant_id)
        theater = await self.theater_repo.get_by_id(requested) if requested else None

        if caller.is_global_admin:
            return theater

        if theater is None:
            raise TenantAccessError("Theater not found", code=ErrorCode.THEATER_NOT_FOUND)
        if not theater.is_active:
            raise TenantAccessError("Theater is inactive", code=ErrorCode.THEATER_INACTIVE)
        if same_id(caller.tenant_id, theater.id):
            return theater

        logger.warning(
            "Cross-theater access denied",
            caller_tenant_id=caller.tenant_id,
            requested_tenant_id=requested,
        )
        raise TenantAccessError(
            "You do not have access to this theater", code=ErrorCode.THEATER_ACCESS_DENIED
        )

    async def require_theater(self, caller: Principal | None, tenant_id: Any) -> Theater:
        """authorize(), but the theater must exist even for administrators."""
        theater = await self.authorize(caller, tenant_id)
        if theater is None:
            raise TenantAccessError("Theater not found", code=ErrorCode.THEATER_NOT_FOUND)
        return theater

    @staticmethod
    def require_role(caller: Principal, allowed: set[str]) -> None:
        """Role gate. Global administrators pass every gate."""
        if caller.is_global_admin:
            return
        if caller.role not in allowed and caller.user_type not in allowed:
            raise TenantAccessError(
                "Insufficient permissions", code=ErrorCode.INSUFFICIENT_PERMISSIONS
            )

    async def require_page_access(self, caller: Principal, page: str) -> None:
        """Page-permission overlay for theater staff.

        Administrators and theater admins see every page; other staff need
        an active role whose permission list grants it.
        """
        if caller.is_global_admin or caller.user_type == "theater_admin":
            return
        role = await self.role_repo.get_by_id(caller.role_id) if caller.role_id else None
        if (
            role is None
            or not role.is_active
            or not same_id(role.tenant_id, caller.tenant_id)
            or not role.grants_page(page)
        ):
            raise TenantAccessError(
                f"No access to page '{page}'", code=ErrorCode.PAGE_ACCESS_DENIED
            )
