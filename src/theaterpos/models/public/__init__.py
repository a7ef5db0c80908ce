"""Registry models shared across theaters: theaters, admins, sessions."""

from src.theaterpos.models.public.admin import Admin
from src.theaterpos.models.public.auth import AgentGrant, UserSession
from src.theaterpos.models.public.theater import Theater

__all__ = [
    "Admin",
    "AgentGrant",
    "Theater",
    "UserSession",
]
