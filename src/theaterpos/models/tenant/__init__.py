"""Theater-scoped models. Every row carries tenant_id."""

from src.theaterpos.models.tenant.order import Order
from src.theaterpos.models.tenant.user import Role, TheaterUser

__all__ = [
    "Order",
    "Role",
    "TheaterUser",
]
