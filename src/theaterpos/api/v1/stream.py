"""Server-sent event stream endpoints."""

from collections.abc import Iterator
from typing import Annotated, Any

from fastapi import APIRouter, Header, Query
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from src.theaterpos.api.dependencies import AuthServiceDep, NotificationBusDep, SuperAdmin
from src.theaterpos.core.config import get_settings
from src.theaterpos.core.exceptions import AuthError, ErrorCode, is_normal_disconnect
from src.theaterpos.core.logging import bind_user_context, get_logger
from src.theaterpos.core.security import (
    Principal,
    TokenType,
    decode_token,
    extract_bearer,
    normalize_token,
)
from src.theaterpos.services.auth_service import AuthService
from src.theaterpos.services.notification_bus import Connection, NotificationBus

logger = get_logger(__name__)

router = APIRouter(prefix="/stream", tags=["stream"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _leaf_exceptions(exc: BaseException) -> Iterator[BaseException]:
    if isinstance(exc, BaseExceptionGroup):
        for inner in exc.exceptions:
            yield from _leaf_exceptions(inner)
    else:
        yield exc


def report_stream_error(exc: BaseException, connection: Connection) -> None:
    """Peer resets and aborted requests are routine for long-lived streams."""
    if all(is_normal_disconnect(e) for e in _leaf_exceptions(exc)):
        logger.info(
            "Stream client disconnected",
            subscriber=connection.key,
            connection_id=connection.id,
            reason=type(exc).__name__,
        )
        return
    logger.error(
        "Stream write failed",
        subscriber=connection.key,
        connection_id=connection.id,
        exc_info=exc,
    )


class EventStreamResponse(StreamingResponse):
    """Streams one bus connection and always releases it when the stream ends."""

    def __init__(self, bus: NotificationBus, connection: Connection, keepalive: float):
        self.bus = bus
        self.connection = connection
        super().__init__(
            bus.stream(connection, keepalive),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        reason = "closed"
        try:
            await super().__call__(scope, receive, send)
        except Exception as exc:
            reason = "disconnected"
            report_stream_error(exc, self.connection)
        finally:
            self.bus.unsubscribe(self.connection, reason)


async def resolve_stream_principal(raw_token: str | None, auth_service: AuthService) -> Principal:
    """Customer stream tokens open only their own stream; anything else is an access token."""
    token = normalize_token(raw_token)
    payload = decode_token(token, expected_type=TokenType.CUSTOMER_STREAM)
    if payload is not None:
        principal = Principal.from_claims(payload)
        if not principal.tenant_id or not principal.extra.get("phone"):
            raise AuthError("Invalid stream token", code=ErrorCode.TOKEN_INVALID)
        return principal
    context = await auth_service.authenticate(token)
    return context.principal


@router.get(
    "",
    responses={
        200: {"content": {"text/event-stream": {}}, "description": "Event stream"},
        401: {"description": "Missing or invalid token"},
    },
)
async def stream(
    auth_service: AuthServiceDep,
    bus: NotificationBusDep,
    authorization: Annotated[str | None, Header()] = None,
    token: Annotated[str | None, Query()] = None,
) -> EventStreamResponse:
    """Open the caller's event stream.

    The first frame is `{"type": "connected"}`; a keep-alive comment
    follows every idle interval. A newer stream for the same subscriber
    closes this one.
    """
    principal = await resolve_stream_principal(extract_bearer(authorization) or token, auth_service)
    bind_user_context(principal.user_id, principal.tenant_id, principal.username)

    connection = bus.subscribe(
        principal.stream_key,
        user_id=principal.user_id,
        tenant_id=principal.tenant_id,
        user_type=principal.user_type,
        is_super_admin=principal.is_super_admin,
    )
    return EventStreamResponse(bus, connection, get_settings().sse_keepalive_seconds)


@router.get("/connections")
async def list_connections(_: SuperAdmin, bus: NotificationBusDep) -> dict[str, Any]:
    """Open streams, by subscriber key."""
    connections = [bus.get(key) for key in bus.keys()]
    return {
        "total": len(bus),
        "connections": [
            {
                "key": c.key,
                "connectionId": c.id,
                "userType": c.attrs.get("user_type"),
                "tenantId": c.attrs.get("tenant_id"),
                "openedAt": c.opened_at.isoformat(),
            }
            for c in connections
            if c is not None
        ],
    }
