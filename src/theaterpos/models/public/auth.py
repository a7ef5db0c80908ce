"""Authentication state - sessions and delegated agent grants."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

from src.theaterpos.models.base import utc_now


class UserSession(SQLModel, table=True):
    """Login session. At most one active row per user_id.

    The partial unique index makes the database reject a second active
    session for the same principal.
    """

    __tablename__ = "user_sessions"
    __table_args__ = (
        Index(
            "uq_user_sessions_active_user",
            "user_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    # Canonical principal id; "agent:<theater id>" for print agents
    user_id: str = Field(max_length=100, index=True)
    tenant_id: str | None = Field(default=None, max_length=100, index=True)
    token: str = Field(max_length=2048)
    token_hash: str = Field(max_length=64, index=True)
    refresh_token: str = Field(max_length=2048)
    refresh_token_hash: str = Field(max_length=64, index=True)
    created_at: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now)
    is_active: bool = Field(default=True)
    user_agent: str | None = Field(default=None, max_length=512)
    ip_address: str | None = Field(default=None, max_length=64)
    logged_out_at: datetime | None = Field(default=None)


class AgentGrant(SQLModel, table=True):
    """One-time credential that lets the supervisor start a theater's agent."""

    __tablename__ = "agent_grants"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    jti: str = Field(max_length=64, unique=True, index=True)
    tenant_id: UUID = Field(foreign_key="theaters.id", index=True)
    issued_to_user_id: str = Field(max_length=100)
    expires_at: datetime
    used_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
