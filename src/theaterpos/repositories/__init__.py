"""Repository layer - data access abstraction."""

from src.theaterpos.repositories.base import BaseRepository, to_uuid
from src.theaterpos.repositories.public import (
    AdminRepository,
    AgentGrantRepository,
    SessionRepository,
    TheaterRepository,
)
from src.theaterpos.repositories.tenant import (
    OrderRepository,
    RoleRepository,
    TheaterUserRepository,
)

__all__ = [
    # Base
    "BaseRepository",
    "to_uuid",
    # Registry
    "AdminRepository",
    "AgentGrantRepository",
    "SessionRepository",
    "TheaterRepository",
    # Theater-scoped
    "OrderRepository",
    "RoleRepository",
    "TheaterUserRepository",
]
