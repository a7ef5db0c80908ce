"""Repository for Admin entity."""

from uuid import UUID

from sqlalchemy import func, update
from sqlmodel import select

from src.theaterpos.models.base import utc_now
from src.theaterpos.models.public import Admin
from src.theaterpos.repositories.base import BaseRepository


class AdminRepository(BaseRepository[Admin]):
    model = Admin

    async def get_by_email(self, email: str) -> Admin | None:
        """Get admin by email address (case-insensitive)."""
        result = await self.session.execute(
            select(Admin).where(func.lower(Admin.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def record_login(self, admin_id: UUID) -> None:
        stmt = (
            update(Admin)
            .where(Admin.id == admin_id)  # type: ignore[arg-type]
            .values(last_login=utc_now())
        )
        await self.session.execute(stmt)
