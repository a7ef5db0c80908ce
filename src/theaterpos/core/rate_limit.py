"""Rate limiting configuration (per-process, in-memory).

Provides two layers of rate limiting:
1. Global middleware: token bucket per client IP (DoS protection)
2. Endpoint decorators: slowapi limits on credential endpoints (password/PIN guessing)
"""

import asyncio
import time
from collections import defaultdict

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from src.theaterpos.core.config import get_settings
from src.theaterpos.core.exceptions import ErrorCode
from src.theaterpos.core.logging import get_logger

logger = get_logger(__name__)

_rate_limit_buckets: dict[str, dict[str, float]] = defaultdict(dict)
_rate_limit_lock = asyncio.Lock()

# Long-lived and monitoring endpoints never count against the bucket
EXEMPT_PATHS = ("/health", "/metrics", "/docs", "/openapi.json", "/redoc", "/api/v1/stream")


def get_rate_limit_key(request: Request) -> str:
    """Generate rate limit key from client IP only.

    Never include user-controlled headers in the key; rotating them would
    create unlimited new buckets.
    """
    ip = get_remote_address(request) or "unknown"
    return ip


def create_limiter() -> Limiter:
    """Create rate limiter. Disabled in testing environment."""
    settings = get_settings()

    if settings.app_env == "testing":
        logger.info("Rate limiter disabled (testing environment)")
        return Limiter(key_func=get_rate_limit_key, enabled=False)

    logger.info("Rate limiter using in-memory backend (not distributed)")
    return Limiter(key_func=get_rate_limit_key)


# Reads settings at import time; reconfiguration needs a restart
limiter = create_limiter()


async def _check_global_rate_limit(client_ip: str) -> bool:
    """Token bucket check. Returns True if the request is allowed."""
    settings = get_settings()
    if settings.app_env == "testing":
        return True

    rate = settings.global_rate_limit_per_second
    burst = settings.global_rate_limit_burst
    now = time.time()

    async with _rate_limit_lock:
        if client_ip not in _rate_limit_buckets:
            _rate_limit_buckets[client_ip] = {
                "tokens": float(burst),
                "last_update": now,
            }

        bucket = _rate_limit_buckets[client_ip]
        elapsed = now - bucket["last_update"]

        # Replenish tokens based on time elapsed
        bucket["tokens"] = min(burst, bucket["tokens"] + elapsed * rate)
        bucket["last_update"] = now

        if bucket["tokens"] >= 1:
            bucket["tokens"] -= 1
            return True
        return False


async def global_rate_limit_middleware(
    request: Request,
    call_next: object,  # type: ignore[type-arg]
) -> JSONResponse:
    """Global rate limiting middleware, applied before authentication."""
    if request.url.path.startswith(EXEMPT_PATHS):
        return await call_next(request)  # type: ignore[misc, operator, no-any-return]

    client_ip = get_remote_address(request) or "unknown"

    if not await _check_global_rate_limit(client_ip):
        logger.warning(
            "Global rate limit exceeded",
            client_ip=client_ip,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=429,
            content={
                "error": "Too many requests",
                "code": ErrorCode.RATE_LIMITED.value,
                "message": "Too many requests. Please slow down.",
            },
            headers={"Retry-After": "1"},
        )

    return await call_next(request)  # type: ignore[misc, operator, no-any-return]
