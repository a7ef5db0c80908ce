"""Repositories for theater staff and roles."""

from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import select

from src.theaterpos.models.base import utc_now
from src.theaterpos.models.tenant import Role, TheaterUser
from src.theaterpos.repositories.base import BaseRepository, to_uuid


class TheaterUserRepository(BaseRepository[TheaterUser]):
    model = TheaterUser

    async def list_by_username(self, username: str) -> list[TheaterUser]:
        """All accounts with this username, across theaters, oldest first."""
        result = await self.session.execute(
            select(TheaterUser)
            .where(func.lower(TheaterUser.username) == username.strip().lower())
            .order_by(TheaterUser.created_at)  # type: ignore[arg-type]
        )
        return list(result.scalars().all())

    async def get_in_tenant(self, user_id: UUID | str, tenant_id: UUID | str) -> TheaterUser | None:
        """Get a user only if it belongs to the given theater."""
        user_key, tenant_key = to_uuid(user_id), to_uuid(tenant_id)
        if user_key is None or tenant_key is None:
            return None
        result = await self.session.execute(
            select(TheaterUser).where(
                TheaterUser.id == user_key,
                TheaterUser.tenant_id == tenant_key,
            )
        )
        return result.scalar_one_or_none()

    async def record_login(self, user_id: UUID) -> None:
        """Stamp last_login without loading the row."""
        stmt = (
            update(TheaterUser)
            .where(TheaterUser.id == user_id)  # type: ignore[arg-type]
            .values(last_login=utc_now())
        )
        await self.session.execute(stmt)


class RoleRepository(BaseRepository[Role]):
    model = Role
