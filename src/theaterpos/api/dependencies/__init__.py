"""FastAPI dependency injection definitions.

Re-exports all dependencies for convenience.
"""

# Auth
from src.theaterpos.api.dependencies.auth import (
    CurrentAuth,
    CurrentPrincipal,
    SuperAdmin,
    TheaterAdmin,
    get_auth_context,
    get_current_principal,
    require_page,
    require_roles,
    require_super_admin,
)

# Database
from src.theaterpos.api.dependencies.db import DBSession, get_db_session

# Repositories
from src.theaterpos.api.dependencies.repositories import (
    AdminRepo,
    AgentGrantRepo,
    OrderRepo,
    RoleRepo,
    SessionRepo,
    TheaterRepo,
    TheaterUserRepo,
)

# Services
from src.theaterpos.api.dependencies.services import (
    AgentSupervisorDep,
    AuthServiceDep,
    NotificationBusDep,
    OrderServiceDep,
    TenantAuthorizerDep,
    get_agent_supervisor,
    get_auth_service,
    get_notification_bus,
    get_order_service,
    get_tenant_authorizer,
)

# Tenant
from src.theaterpos.api.dependencies.tenant import (
    PathTheater,
    QueryTheater,
    get_path_theater,
    get_query_theater,
)

__all__ = [
    # Database
    "DBSession",
    "get_db_session",
    # Auth
    "CurrentAuth",
    "CurrentPrincipal",
    "SuperAdmin",
    "TheaterAdmin",
    "get_auth_context",
    "get_current_principal",
    "require_page",
    "require_roles",
    "require_super_admin",
    # Repositories
    "AdminRepo",
    "AgentGrantRepo",
    "OrderRepo",
    "RoleRepo",
    "SessionRepo",
    "TheaterRepo",
    "TheaterUserRepo",
    # Services
    "AgentSupervisorDep",
    "AuthServiceDep",
    "NotificationBusDep",
    "OrderServiceDep",
    "TenantAuthorizerDep",
    "get_agent_supervisor",
    "get_auth_service",
    "get_notification_bus",
    "get_order_service",
    "get_tenant_authorizer",
    # Tenant
    "PathTheater",
    "QueryTheater",
    "get_path_theater",
    "get_query_theater",
]
