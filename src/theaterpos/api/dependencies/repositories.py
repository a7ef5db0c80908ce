"""Repository factory dependencies."""

from typing import Annotated

from fastapi import Depends

from src.theaterpos.api.dependencies.db import DBSession
from src.theaterpos.repositories import (
    AdminRepository,
    AgentGrantRepository,
    OrderRepository,
    RoleRepository,
    SessionRepository,
    TheaterRepository,
    TheaterUserRepository,
)


def get_theater_repository(session: DBSession) -> TheaterRepository:
    return TheaterRepository(session)


def get_admin_repository(session: DBSession) -> AdminRepository:
    return AdminRepository(session)


def get_theater_user_repository(session: DBSession) -> TheaterUserRepository:
    return TheaterUserRepository(session)


def get_role_repository(session: DBSession) -> RoleRepository:
    return RoleRepository(session)


def get_session_repository(session: DBSession) -> SessionRepository:
    """Login sessions (not to be confused with the database session)."""
    return SessionRepository(session)


def get_agent_grant_repository(session: DBSession) -> AgentGrantRepository:
    return AgentGrantRepository(session)


def get_order_repository(session: DBSession) -> OrderRepository:
    return OrderRepository(session)


TheaterRepo = Annotated[TheaterRepository, Depends(get_theater_repository)]
AdminRepo = Annotated[AdminRepository, Depends(get_admin_repository)]
TheaterUserRepo = Annotated[TheaterUserRepository, Depends(get_theater_user_repository)]
RoleRepo = Annotated[RoleRepository, Depends(get_role_repository)]
SessionRepo = Annotated[SessionRepository, Depends(get_session_repository)]
AgentGrantRepo = Annotated[AgentGrantRepository, Depends(get_agent_grant_repository)]
OrderRepo = Annotated[OrderRepository, Depends(get_order_repository)]
