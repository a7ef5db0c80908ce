"""Order ingest - idempotent acceptance, numbering and print bookkeeping."""

import hashlib
import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.theaterpos.core.exceptions import DuplicateOrderError, OrderNotFoundError
from src.theaterpos.core.logging import get_logger
from src.theaterpos.core.security import (
    Principal,
    create_customer_stream_token,
    customer_stream_key,
    tenant_stream_key,
)
from src.theaterpos.models import Order, PaymentMethod, PaymentStatus, TaxMode, Theater
from src.theaterpos.models.base import utc_now
from src.theaterpos.repositories import OrderRepository
from src.theaterpos.schemas.order import OrderCreate, OrderRead
from src.theaterpos.services.notification_bus import NotificationBus
from src.theaterpos.services.pricing import calculate_order_totals

logger = get_logger(__name__)

MAX_SEQUENCE_ATTEMPTS = 5
# Paid on collection, so the kitchen ticket prints as soon as the order lands
PAY_ON_COLLECTION = {PaymentMethod.CASH.value, PaymentMethod.COD.value}


def request_fingerprint(data: OrderCreate) -> str:
    """SHA-256 over the canonical JSON of the order payload."""
    canonical = json.dumps(data.fingerprint_payload(), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()


def format_order_number(prefix: str, sequence: int) -> str:
    return f"{prefix}{sequence:04d}"


def order_to_read(order: Order) -> OrderRead:
    return OrderRead(
        id=str(order.id),
        tenant_id=str(order.tenant_id),
        order_number=order.order_number,
        items=order.items,
        customer=order.customer,
        pricing=order.pricing,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        status=order.status,
        source=order.source,
        notes=order.notes,
        printed=order.printed_at is not None,
        created_at=order.created_at.isoformat(),
    )


def is_printable(order: Order) -> bool:
    """Paid orders, and pay-on-collection orders, get a printed ticket."""
    return (
        order.payment_status == PaymentStatus.PAID.value
        or order.payment_method in PAY_ON_COLLECTION
    )


@dataclass
class IngestResult:
    order: Order
    duplicate: bool
    customer_stream_token: str | None = None


class OrderService:
    """Accepts orders for one request. Callers have already passed the tenant authorizer."""

    def __init__(self, session: AsyncSession, order_repo: OrderRepository, bus: NotificationBus):
        self.session = session
        self.order_repo = order_repo
        self.bus = bus

    async def ingest(
        self,
        theater: Theater,
        data: OrderCreate,
        idempotency_key: str,
        caller: Principal,
    ) -> IngestResult:
        """Persist an order at most once per (theater, idempotency key).

        1. Replay: a stored order under this key is returned as-is
        2. Price the order server-side
        3. Assign the next sequence and insert; unique constraints reject
           a concurrent duplicate key or a sequence clash
        4. After commit, notify the customer stream and the theater's agent
        """
        tenant_id: UUID = theater.id
        fingerprint = request_fingerprint(data)

        existing = await self.order_repo.get_by_idempotency_key(tenant_id, idempotency_key)
        if existing is not None:
            return self._replay(existing, fingerprint)

        totals, lines = calculate_order_totals(
            data.items,
            default_tax_rate=Decimal(theater.gst_rate),
            tax_mode=TaxMode(theater.tax_mode),
            order_discount_pct=data.discount_percentage,
        )
        items = [
            {**item.model_dump(mode="json", by_alias=True), **line}
            for item, line in zip(data.items, lines, strict=True)
        ]
        customer = data.customer.model_dump(mode="json", by_alias=True, exclude_none=True)
        payment_status = data.payment_status or PaymentStatus.PENDING.value
        prefix = theater.order_prefix
        phone = str(customer.get("phone") or "").strip()
        stream_token = create_customer_stream_token(str(tenant_id), phone) if phone else None

        for attempt in range(1, MAX_SEQUENCE_ATTEMPTS + 1):
            sequence = await self.order_repo.next_sequence(tenant_id)
            order = Order(
                tenant_id=tenant_id,
                idempotency_key=idempotency_key,
                request_hash=fingerprint,
                sequence=sequence,
                order_number=format_order_number(prefix, sequence),
                items=items,
                customer=customer,
                pricing=totals.as_json(),
                payment_method=data.payment_method.value,
                payment_status=payment_status,
                source=data.source.value,
                notes=data.notes,
                created_by=caller.user_id,
                customer_stream_token=stream_token,
            )
            self.order_repo.add(order)
            try:
                await self.session.commit()
                break
            except IntegrityError:
                await self.session.rollback()
                existing = await self.order_repo.get_by_idempotency_key(
                    tenant_id, idempotency_key
                )
                if existing is not None:
                    logger.info("Concurrent submission of the same order, replaying")
                    return self._replay(existing, fingerprint)
                logger.warning("Order sequence clash, retrying", attempt=attempt)
                if attempt == MAX_SEQUENCE_ATTEMPTS:
                    raise
            except Exception:
                await self.session.rollback()
                raise

        logger.info(
            "Order accepted",
            order_id=str(order.id),
            order_number=order.order_number,
            total=str(totals.total),
        )
        self._emit_created(order)
        return IngestResult(
            order=order,
            duplicate=False,
            customer_stream_token=order.customer_stream_token,
        )

    def _replay(self, existing: Order, fingerprint: str) -> IngestResult:
        if existing.request_hash != fingerprint:
            logger.warning(
                "Idempotency key reused with a different payload",
                order_id=str(existing.id),
            )
            raise DuplicateOrderError(str(existing.id))
        logger.info("Order replayed", order_id=str(existing.id))
        return IngestResult(
            order=existing,
            duplicate=True,
            customer_stream_token=existing.customer_stream_token,
        )

    def _emit_created(self, order: Order) -> None:
        """Post-commit notifications. Failures are logged, never raised."""
        try:
            phone = order.customer_phone
            if phone:
                self.bus.send_to_user(
                    customer_stream_key(str(order.tenant_id), phone),
                    {
                        "type": "order_created",
                        "orderId": str(order.id),
                        "orderNumber": order.order_number,
                        "status": order.status,
                    },
                )
            delivered = self.bus.send_to_user(
                tenant_stream_key(str(order.tenant_id)), self.pos_event(order)
            )
            if not delivered:
                logger.info(
                    "No print agent listening, order left for catch-up",
                    order_id=str(order.id),
                )
        except Exception as e:
            logger.warning("Order notification failed", order_id=str(order.id), error=str(e))

    @staticmethod
    def pos_event(order: Order) -> dict[str, Any]:
        return {
            "type": "pos_order",
            "event": "paid" if order.payment_status == PaymentStatus.PAID.value else "created",
            "orderId": str(order.id),
            "orderNumber": order.order_number,
            "tenantId": str(order.tenant_id),
            "paymentMethod": order.payment_method,
            "order": order_to_read(order).model_dump(mode="json", by_alias=True),
        }

    # --- Print bookkeeping ---

    async def list_unprinted(self, theater: Theater, limit: int = 50) -> list[Order]:
        """Printable orders without a printed ticket, oldest first."""
        orders = await self.order_repo.list_unprinted(theater.id, limit=limit)
        return [order for order in orders if is_printable(order)]

    async def mark_printed(self, theater: Theater, order_id: str) -> Order:
        order = await self.order_repo.get_in_tenant(order_id, theater.id)
        if order is None:
            raise OrderNotFoundError("Order not found")
        if order.printed_at is not None:
            return order
        try:
            order.printed_at = utc_now()
            order.updated_at = order.printed_at
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        logger.info("Order printed", order_id=str(order.id), order_number=order.order_number)
        return order
