"""Model exports.

Import from here: `from src.theaterpos.models import TheaterUser, Theater`
"""

# Enums
from src.theaterpos.models.enums import (
    AdminRole,
    AgentState,
    OrderSource,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    TaxMode,
    TheaterUserType,
)

# Registry models
from src.theaterpos.models.public import Admin, AgentGrant, Theater, UserSession

# Theater-scoped models
from src.theaterpos.models.tenant import Order, Role, TheaterUser

__all__ = [
    # Enums
    "AdminRole",
    "AgentState",
    "OrderSource",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "TaxMode",
    "TheaterUserType",
    # Registry models
    "Admin",
    "AgentGrant",
    "Theater",
    "UserSession",
    # Theater-scoped models
    "Order",
    "Role",
    "TheaterUser",
]
