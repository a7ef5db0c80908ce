"""Repository for the order ledger."""

from uuid import UUID

from sqlalchemy import func
from sqlmodel import select

from src.theaterpos.models.tenant import Order
from src.theaterpos.repositories.base import BaseRepository, to_uuid


class OrderRepository(BaseRepository[Order]):
    """Orders are always read through their theater."""

    model = Order

    async def get_by_idempotency_key(self, tenant_id: UUID, key: str) -> Order | None:
        result = await self.session.execute(
            select(Order).where(
                Order.tenant_id == tenant_id,
                Order.idempotency_key == key,
            )
        )
        return result.scalar_one_or_none()

    async def get_in_tenant(self, order_id: UUID | str, tenant_id: UUID) -> Order | None:
        key = to_uuid(order_id)
        if key is None:
            return None
        result = await self.session.execute(
            select(Order).where(Order.id == key, Order.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def next_sequence(self, tenant_id: UUID) -> int:
        """Next per-theater sequence number (max + 1).

        Not safe on its own under concurrency; the unique constraint on
        (tenant_id, sequence) rejects a clash and the caller retries.
        """
        result = await self.session.execute(
            select(func.max(Order.sequence)).where(Order.tenant_id == tenant_id)
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def count_for_tenant(self, tenant_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(Order).where(Order.tenant_id == tenant_id)
        )
        return int(result.scalar_one())

    async def list_unprinted(self, tenant_id: UUID, limit: int = 50) -> list[Order]:
        """Orders not yet printed, oldest first."""
        result = await self.session.execute(
            select(Order)
            .where(
                Order.tenant_id == tenant_id,
                Order.printed_at.is_(None),  # type: ignore[union-attr]
            )
            .order_by(Order.sequence)  # type: ignore[arg-type]
            .limit(limit)
        )
        return list(result.scalars().all())
