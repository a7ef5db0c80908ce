"""Theater-scoped repositories."""

from src.theaterpos.repositories.tenant.order import OrderRepository
from src.theaterpos.repositories.tenant.user import RoleRepository, TheaterUserRepository

__all__ = [
    "OrderRepository",
    "RoleRepository",
    "TheaterUserRepository",
]
