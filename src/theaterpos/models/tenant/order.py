"""Order ledger, one sequence per theater."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from src.theaterpos.models.base import utc_now
from src.theaterpos.models.enums import OrderSource, OrderStatus, PaymentStatus


class Order(SQLModel, table=True):
    """Persisted order.

    (tenant_id, idempotency_key) is unique so a retried submission can never
    create a second row; (tenant_id, sequence) keeps order numbers unique.
    """

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_orders_tenant_idempotency"),
        UniqueConstraint("tenant_id", "sequence", name="uq_orders_tenant_sequence"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(foreign_key="theaters.id", index=True)
    idempotency_key: str = Field(max_length=100)
    request_hash: str = Field(max_length=64)
    sequence: int
    order_number: str = Field(max_length=20, index=True)
    items: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    customer: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    pricing: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    payment_method: str = Field(max_length=20)
    payment_status: str = Field(default=PaymentStatus.PENDING.value, max_length=20)
    status: str = Field(default=OrderStatus.CONFIRMED.value, max_length=20)
    source: str = Field(default=OrderSource.QR_CODE.value, max_length=20)
    notes: str | None = Field(default=None, max_length=500)
    created_by: str | None = Field(default=None, max_length=100)
    # Issued once at acceptance and returned unchanged on every replay
    customer_stream_token: str | None = Field(default=None, sa_column=Column(Text))
    printed_at: datetime | None = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def customer_phone(self) -> str | None:
        phone = (self.customer or {}).get("phone")
        return str(phone).strip() or None if phone else None
