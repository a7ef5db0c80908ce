"""Response-already-sent guard.

Once the status line has gone out, nothing may try to send a second
response. Errors raised after that point are logged and swallowed here;
errors raised before it propagate to the exception handlers as usual.
"""

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from src.theaterpos.core.exceptions import is_normal_disconnect
from src.theaterpos.core.logging import get_logger

logger = get_logger(__name__)


class ResponseGuardMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = False

        async def guarded_send(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                if started:
                    logger.warning(
                        "Dropped second response start",
                        path=scope.get("path"),
                        status_code=message.get("status"),
                    )
                    return
                started = True
            await send(message)

        try:
            await self.app(scope, receive, guarded_send)
        except Exception as exc:
            if not started:
                raise
            if is_normal_disconnect(exc):
                logger.info("Client went away mid-response", path=scope.get("path"))
            else:
                logger.error(
                    "Error after response was sent",
                    path=scope.get("path"),
                    exc_info=exc,
                )
