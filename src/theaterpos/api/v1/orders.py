"""Order ingest and print bookkeeping endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Header, Query, Response

from src.theaterpos.api.dependencies import (
    CurrentPrincipal,
    OrderServiceDep,
    QueryTheater,
    TenantAuthorizerDep,
)
from src.theaterpos.core.exceptions import ApiError, ErrorCode
from src.theaterpos.schemas.order import OrderAccepted, OrderCreate, OrderRead
from src.theaterpos.services.order_service import order_to_read

router = APIRouter(prefix="/orders", tags=["orders"])

REPLAY_HEADER = "Idempotent-Replayed"


def resolve_idempotency_key(header_key: str | None, body_key: str | None) -> str:
    """The key may come in the header, the body, or both when they agree."""
    header_key = (header_key or "").strip() or None
    body_key = (body_key or "").strip() or None
    if header_key and body_key and header_key != body_key:
        raise ApiError(
            ErrorCode.IDEMPOTENCY_KEY_MISMATCH,
            "Idempotency-Key header and idempotencyKey body field differ",
        )
    key = header_key or body_key
    if key is None:
        raise ApiError(
            ErrorCode.IDEMPOTENCY_KEY_REQUIRED,
            "Send an Idempotency-Key header or an idempotencyKey field",
        )
    return key


@router.post(
    "",
    response_model=OrderAccepted,
    responses={
        200: {"description": "Order accepted, or an earlier acceptance replayed"},
        400: {"description": "Missing or conflicting idempotency key"},
        409: {"description": "Idempotency key reused for a different order"},
    },
)
async def create_order(
    order_data: OrderCreate,
    response: Response,
    principal: CurrentPrincipal,
    authorizer: TenantAuthorizerDep,
    service: OrderServiceDep,
    idempotency_key: Annotated[str | None, Header(max_length=100)] = None,
) -> OrderAccepted:
    """Accept an order at most once per idempotency key.

    Replays answer with the original order and `Idempotent-Replayed: true`.
    """
    theater = await authorizer.require_theater(principal, order_data.tenant_id)
    key = resolve_idempotency_key(idempotency_key, order_data.idempotency_key)

    result = await service.ingest(theater, order_data, key, principal)
    if result.duplicate:
        response.headers[REPLAY_HEADER] = "true"

    order = result.order
    return OrderAccepted(
        order_id=str(order.id),
        order_number=order.order_number,
        order_status=order.status,
        total=str(order.pricing.get("total", "0")),
        customer_stream_token=result.customer_stream_token,
    )


@router.get("/unprinted")
async def list_unprinted(
    theater: QueryTheater,
    service: OrderServiceDep,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> dict[str, Any]:
    """Printable orders that have no ticket yet, oldest first."""
    orders = await service.list_unprinted(theater, limit=limit)
    return {
        "orders": [order_to_read(o).model_dump(mode="json", by_alias=True) for o in orders],
        "total": len(orders),
    }


@router.post("/{order_id}/printed", response_model=OrderRead)
async def mark_printed(order_id: str, theater: QueryTheater, service: OrderServiceDep) -> OrderRead:
    """Record that the order's ticket was printed. Idempotent."""
    order = await service.mark_printed(theater, order_id)
    return order_to_read(order)
