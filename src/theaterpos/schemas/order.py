from decimal import Decimal
from typing import Any

from pydantic import Field, field_validator

from src.theaterpos.models.enums import OrderSource, PaymentMethod
from src.theaterpos.schemas.base import CamelModel


class OrderItemIn(CamelModel):
    product_id: str | None = None
    name: str = Field(min_length=1, max_length=200)
    quantity: int = Field(gt=0, le=1000)
    unit_price: Decimal = Field(ge=0)
    tax_rate: Decimal | None = Field(default=None, ge=0, le=100)
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class CustomerIn(CamelModel):
    name: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=20)
    seat: str | None = Field(default=None, max_length=50)
    qr_name: str | None = Field(default=None, max_length=100)
    screen: str | None = Field(default=None, max_length=50)

    @field_validator("phone")
    @classmethod
    def strip_phone(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class OrderCreate(CamelModel):
    tenant_id: str = Field(min_length=1, max_length=100)
    idempotency_key: str | None = Field(default=None, min_length=8, max_length=100)
    items: list[OrderItemIn] = Field(min_length=1, max_length=200)
    customer: CustomerIn = Field(default_factory=CustomerIn)
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: str | None = None
    source: OrderSource = OrderSource.QR_CODE
    notes: str | None = Field(default=None, max_length=500)
    discount_percentage: Decimal = Field(default=Decimal("0"), ge=0, le=100)

    def fingerprint_payload(self) -> dict[str, Any]:
        """Everything that defines the order, minus transport fields."""
        return self.model_dump(mode="json", exclude={"idempotency_key"}, by_alias=True)


class OrderAccepted(CamelModel):
    order_id: str
    order_number: str
    status: str = "accepted"
    order_status: str
    total: str
    customer_stream_token: str | None = None


class OrderRead(CamelModel):
    id: str
    tenant_id: str
    order_number: str
    items: list[dict[str, Any]]
    customer: dict[str, Any]
    pricing: dict[str, Any]
    payment_method: str
    payment_status: str
    status: str
    source: str
    notes: str | None = None
    printed: bool
    created_at: str
