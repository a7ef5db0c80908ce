"""Service factory dependencies."""

from typing import Annotated

from fastapi import Depends

from src.theaterpos.agent.supervisor import AgentSupervisor, agent_supervisor
from src.theaterpos.api.dependencies.db import DBSession
from src.theaterpos.api.dependencies.repositories import (
    AdminRepo,
    AgentGrantRepo,
    OrderRepo,
    RoleRepo,
    SessionRepo,
    TheaterRepo,
    TheaterUserRepo,
)
from src.theaterpos.services.auth_service import AuthService
from src.theaterpos.services.notification_bus import NotificationBus, notification_bus
from src.theaterpos.services.order_service import OrderService
from src.theaterpos.services.tenant_authorizer import TenantAuthorizer
from src.theaterpos.services.user_resolver import default_resolver


def get_notification_bus() -> NotificationBus:
    """Process-wide bus. Overridden in tests."""
    return notification_bus


def get_agent_supervisor() -> AgentSupervisor:
    """Process-wide supervisor. Overridden in tests."""
    return agent_supervisor


NotificationBusDep = Annotated[NotificationBus, Depends(get_notification_bus)]
AgentSupervisorDep = Annotated[AgentSupervisor, Depends(get_agent_supervisor)]


def get_auth_service(
    session: DBSession,
    theater_repo: TheaterRepo,
    admin_repo: AdminRepo,
    user_repo: TheaterUserRepo,
    role_repo: RoleRepo,
    session_repo: SessionRepo,
    grant_repo: AgentGrantRepo,
) -> AuthService:
    """Get auth service with the default account resolver."""
    return AuthService(
        session=session,
        resolver=default_resolver(admin_repo, user_repo),
        theater_repo=theater_repo,
        admin_repo=admin_repo,
        user_repo=user_repo,
        role_repo=role_repo,
        session_repo=session_repo,
        grant_repo=grant_repo,
    )


def get_tenant_authorizer(theater_repo: TheaterRepo, role_repo: RoleRepo) -> TenantAuthorizer:
    return TenantAuthorizer(theater_repo, role_repo)


def get_order_service(
    session: DBSession,
    order_repo: OrderRepo,
    bus: NotificationBusDep,
) -> OrderService:
    return OrderService(session, order_repo, bus)


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
TenantAuthorizerDep = Annotated[TenantAuthorizer, Depends(get_tenant_authorizer)]
OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
