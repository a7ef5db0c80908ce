"""Request tracking middleware for graceful shutdown."""

from fastapi import Request, Response
from starlette.middleware.base import RequestResponseEndpoint

from src.theaterpos.core.shutdown import request_tracker

# Monitoring probes and long-lived event streams do not hold up shutdown
_UNTRACKED_PATHS = frozenset({"/health", "/metrics", "/api/v1/stream"})


async def request_tracking_middleware(
    request: Request, call_next: RequestResponseEndpoint
) -> Response:
    """Track in-flight requests for graceful shutdown."""
    if request.url.path in _UNTRACKED_PATHS:
        return await call_next(request)

    async with request_tracker.track_request():
        return await call_next(request)
