"""Theater model - the tenant registry."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from src.theaterpos.models.base import utc_now
from src.theaterpos.models.enums import TaxMode


class Theater(SQLModel, table=True):
    """A theater. Every tenant-scoped row points at one of these."""

    __tablename__ = "theaters"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(max_length=100, index=True)
    is_active: bool = Field(default=True)
    address: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=20)
    email: str | None = Field(default=None, max_length=255)
    gst_rate: Decimal = Field(default=Decimal("5"), max_digits=5, decimal_places=2)
    tax_mode: str = Field(default=TaxMode.EXCLUDE.value, max_length=10)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def order_prefix(self) -> str:
        """Two upper-case letters from the theater name, used in order numbers."""
        letters = [c for c in self.name if c.isalpha()]
        prefix = "".join(letters[:2]).upper()
        return prefix.ljust(2, "X")
