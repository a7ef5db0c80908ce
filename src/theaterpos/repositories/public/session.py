"""Repository for UserSession entity."""

from datetime import datetime

from sqlalchemy import delete, func, update
from sqlmodel import select

from src.theaterpos.models.base import utc_now
from src.theaterpos.models.public import UserSession
from src.theaterpos.repositories.base import BaseRepository


class SessionRepository(BaseRepository[UserSession]):
    """Login sessions. Uniqueness of the active row is left to the database."""

    model = UserSession

    async def get_active_by_token_hash(self, token_hash: str) -> UserSession | None:
        result = await self.session.execute(
            select(UserSession).where(
                UserSession.token_hash == token_hash,
                UserSession.is_active == True,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def get_active_by_refresh_hash(self, refresh_hash: str) -> UserSession | None:
        result = await self.session.execute(
            select(UserSession).where(
                UserSession.refresh_token_hash == refresh_hash,
                UserSession.is_active == True,  # noqa: E712
            )
        )
        return result.scalar_one_or_none()

    async def count_active_for_user(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(UserSession)
            .where(
                UserSession.user_id == user_id,
                UserSession.is_active == True,  # noqa: E712
            )
        )
        return int(result.scalar_one())

    async def delete_active_for_user(self, user_id: str) -> int:
        """Delete every active session of a user. Returns the number removed."""
        stmt = delete(UserSession).where(
            UserSession.user_id == user_id,  # type: ignore[arg-type]
            UserSession.is_active == True,  # type: ignore[arg-type]  # noqa: E712
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def deactivate_by_token_hash(self, token_hash: str) -> int:
        """Mark the session for this token inactive. Returns rows changed."""
        stmt = (
            update(UserSession)
            .where(UserSession.token_hash == token_hash)  # type: ignore[arg-type]
            .where(UserSession.is_active == True)  # type: ignore[arg-type]  # noqa: E712
            .values(is_active=False, logged_out_at=utc_now())
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def touch(self, session_id: object) -> None:
        """Update last_activity for a session."""
        stmt = (
            update(UserSession)
            .where(UserSession.id == session_id)  # type: ignore[arg-type]
            .values(last_activity=utc_now())
        )
        await self.session.execute(stmt)

    async def delete_inactive_before(self, cutoff: datetime) -> int:
        """Delete ended sessions last used before cutoff. Returns rows removed."""
        stmt = delete(UserSession).where(
            UserSession.is_active == False,  # type: ignore[arg-type]  # noqa: E712
            UserSession.last_activity < cutoff,  # type: ignore[arg-type]
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0  # type: ignore[attr-defined]
