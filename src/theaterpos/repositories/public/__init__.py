"""Registry repositories: theaters, admins, sessions, agent grants."""

from src.theaterpos.repositories.public.admin import AdminRepository
from src.theaterpos.repositories.public.agent_grant import AgentGrantRepository
from src.theaterpos.repositories.public.session import SessionRepository
from src.theaterpos.repositories.public.theater import TheaterRepository

__all__ = [
    "AdminRepository",
    "AgentGrantRepository",
    "SessionRepository",
    "TheaterRepository",
]
