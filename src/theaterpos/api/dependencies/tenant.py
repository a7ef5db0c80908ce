"""Tenant authorizer dependencies for theater-scoped routes."""

from typing import Annotated

from fastapi import Depends, Path, Query

from src.theaterpos.api.dependencies.auth import CurrentPrincipal
from src.theaterpos.api.dependencies.services import TenantAuthorizerDep
from src.theaterpos.models import Theater


async def get_path_theater(
    principal: CurrentPrincipal,
    authorizer: TenantAuthorizerDep,
    tenant_id: Annotated[str, Path(max_length=100)],
) -> Theater:
    """Theater named in the path, admitted by the tenant authorizer."""
    return await authorizer.require_theater(principal, tenant_id)


async def get_query_theater(
    principal: CurrentPrincipal,
    authorizer: TenantAuthorizerDep,
    tenant_id: Annotated[str, Query(alias="tenantId", max_length=100)],
) -> Theater:
    """Theater named by ?tenantId=, admitted by the tenant authorizer."""
    return await authorizer.require_theater(principal, tenant_id)


PathTheater = Annotated[Theater, Depends(get_path_theater)]
QueryTheater = Annotated[Theater, Depends(get_query_theater)]
