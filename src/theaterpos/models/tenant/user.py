"""Theater-scoped staff accounts and their roles."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel

from src.theaterpos.models.base import utc_now
from src.theaterpos.models.enums import TheaterUserType


class Role(SQLModel, table=True):
    """Theater role with a page-permission list of {page, hasAccess} entries."""

    __tablename__ = "roles"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(foreign_key="theaters.id", index=True)
    name: str = Field(max_length=100)
    is_active: bool = Field(default=True)
    permissions: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    created_at: datetime = Field(default_factory=utc_now)

    def grants_page(self, page: str) -> bool:
        return any(
            entry.get("page") == page and entry.get("hasAccess") is True
            for entry in self.permissions or []
        )


class TheaterUser(SQLModel, table=True):
    """Staff login that belongs to exactly one theater. Second factor is a 4-digit PIN."""

    __tablename__ = "theater_users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "username", name="uq_theater_users_tenant_username"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(foreign_key="theaters.id", index=True)
    username: str = Field(max_length=100, index=True)
    hashed_password: str = Field(max_length=255)
    pin: str = Field(max_length=10)
    full_name: str = Field(default="", max_length=100)
    email: str | None = Field(default=None, max_length=255)
    user_type: str = Field(default=TheaterUserType.THEATER_USER.value, max_length=30)
    role_id: UUID | None = Field(default=None, foreign_key="roles.id")
    is_active: bool = Field(default=True)
    last_login: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
