"""Error taxonomy, error envelope and exception handlers."""

import errno
from enum import Enum
from typing import Any

from asgi_correlation_id import correlation_id
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect

from src.theaterpos.core.logging import get_logger

logger = get_logger(__name__)


class ErrorCode(str, Enum):
    """Stable machine-readable error codes returned in the `code` field."""

    TOKEN_MISSING = "TOKEN_MISSING"
    TOKEN_MALFORMED = "TOKEN_MALFORMED"
    TOKEN_INVALID = "TOKEN_INVALID"
    SESSION_INVALIDATED = "SESSION_INVALIDATED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    PAGE_ACCESS_DENIED = "PAGE_ACCESS_DENIED"
    THEATER_NOT_FOUND = "THEATER_NOT_FOUND"
    THEATER_INACTIVE = "THEATER_INACTIVE"
    THEATER_ACCESS_DENIED = "THEATER_ACCESS_DENIED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_PIN = "INVALID_PIN"
    GRANT_INVALID = "GRANT_INVALID"
    DATABASE_NOT_READY = "DATABASE_NOT_READY"
    DUPLICATE = "DUPLICATE"
    IDEMPOTENCY_KEY_REQUIRED = "IDEMPOTENCY_KEY_REQUIRED"
    IDEMPOTENCY_KEY_MISMATCH = "IDEMPOTENCY_KEY_MISMATCH"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# code -> (status, short error text)
_CODE_DEFAULTS: dict[ErrorCode, tuple[int, str]] = {
    ErrorCode.TOKEN_MISSING: (status.HTTP_401_UNAUTHORIZED, "Access token required"),
    ErrorCode.TOKEN_MALFORMED: (status.HTTP_401_UNAUTHORIZED, "Malformed token"),
    ErrorCode.TOKEN_INVALID: (status.HTTP_401_UNAUTHORIZED, "Invalid or expired token"),
    ErrorCode.SESSION_INVALIDATED: (status.HTTP_401_UNAUTHORIZED, "Session invalidated"),
    ErrorCode.AUTH_REQUIRED: (status.HTTP_401_UNAUTHORIZED, "Authentication required"),
    ErrorCode.INSUFFICIENT_PERMISSIONS: (status.HTTP_403_FORBIDDEN, "Insufficient permissions"),
    ErrorCode.PAGE_ACCESS_DENIED: (status.HTTP_403_FORBIDDEN, "Page access denied"),
    ErrorCode.THEATER_NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Theater not found"),
    ErrorCode.THEATER_INACTIVE: (status.HTTP_403_FORBIDDEN, "Theater is inactive"),
    ErrorCode.THEATER_ACCESS_DENIED: (status.HTTP_403_FORBIDDEN, "Theater access denied"),
    ErrorCode.INVALID_CREDENTIALS: (status.HTTP_401_UNAUTHORIZED, "Invalid credentials"),
    ErrorCode.INVALID_PIN: (status.HTTP_401_UNAUTHORIZED, "Invalid PIN"),
    ErrorCode.GRANT_INVALID: (status.HTTP_401_UNAUTHORIZED, "Invalid agent grant"),
    ErrorCode.DATABASE_NOT_READY: (
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database not ready",
    ),
    ErrorCode.DUPLICATE: (status.HTTP_409_CONFLICT, "Duplicate request"),
    ErrorCode.IDEMPOTENCY_KEY_REQUIRED: (
        status.HTTP_400_BAD_REQUEST,
        "Idempotency key required",
    ),
    ErrorCode.IDEMPOTENCY_KEY_MISMATCH: (
        status.HTTP_400_BAD_REQUEST,
        "Idempotency key mismatch",
    ),
    ErrorCode.ORDER_NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Order not found"),
    ErrorCode.VALIDATION_ERROR: (status.HTTP_400_BAD_REQUEST, "Validation failed"),
    ErrorCode.RATE_LIMITED: (status.HTTP_429_TOO_MANY_REQUESTS, "Too many requests"),
    ErrorCode.INTERNAL_ERROR: (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
    ),
}


class ApiError(HTTPException):
    """HTTP error rendered as the `{error, code, message?, details?}` envelope."""

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        details: Any = None,
        status_code: int | None = None,
        error: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        default_status, default_error = _CODE_DEFAULTS[code]
        self.code = code
        self.error = error or default_error
        self.message = message
        self.details = details
        super().__init__(
            status_code=status_code or default_status,
            detail=message or self.error,
            headers=headers,
        )

    def envelope(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error, "code": self.code.value}
        if self.message:
            body["message"] = self.message
        if self.details is not None:
            body["details"] = self.details
        return body


# --- Domain errors raised below the HTTP layer ---


class DomainError(Exception):
    """Base for service-level failures that map onto an ErrorCode."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str | None = None, code: ErrorCode | None = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message or self.code.value)

    def to_api_error(self) -> ApiError:
        return ApiError(self.code, self.message)


class AuthError(DomainError):
    """Authentication failed (credentials, PIN, token, session)."""

    code = ErrorCode.INVALID_CREDENTIALS


class TenantAccessError(DomainError):
    """Tenant authorizer refused the request."""

    code = ErrorCode.THEATER_ACCESS_DENIED


class DatabaseNotReadyError(DomainError):
    """Database could not be reached before the readiness deadline."""

    code = ErrorCode.DATABASE_NOT_READY


class DatabaseUnavailableError(DomainError):
    """A query failed because the database connection is gone."""

    code = ErrorCode.DATABASE_NOT_READY


class DuplicateOrderError(DomainError):
    """Idempotency key reused for a different order payload."""

    code = ErrorCode.DUPLICATE

    def __init__(self, order_id: str, message: str | None = None):
        super().__init__(message or "Idempotency key already used for a different order")
        self.order_id = order_id

    def to_api_error(self) -> ApiError:
        return ApiError(self.code, self.message, details={"orderId": self.order_id})


class OrderNotFoundError(DomainError):
    code = ErrorCode.ORDER_NOT_FOUND


# --- Disconnect classification ---

_NORMAL_DISCONNECT_ERRNOS = {errno.ECONNRESET, errno.EPIPE}
_NORMAL_DISCONNECT_CODES = {"ECONNRESET", "EPIPE"}


def is_normal_disconnect(exc: BaseException) -> bool:
    """Return True when an exception only means the peer went away.

    Connection resets, broken pipes and aborted requests are expected on
    long-lived streams and must not be reported as errors.
    """
    if isinstance(exc, (ConnectionResetError, BrokenPipeError, ClientDisconnect)):
        return True
    if isinstance(exc, OSError) and exc.errno in _NORMAL_DISCONNECT_ERRNOS:
        return True
    if getattr(exc, "code", None) in _NORMAL_DISCONNECT_CODES:
        return True
    return str(exc).strip().lower() == "aborted"


def _error_body(code: str, error: str, request_id: str | None, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"error": error, "code": code}
    body.update({k: v for k, v in extra.items() if v is not None})
    body["request_id"] = request_id
    return body


def setup_exception_handlers(app: FastAPI, expose_internal_errors: bool = False) -> None:
    """Configure exception handlers that render the error envelope with request_id."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        body = exc.envelope()
        body["request_id"] = correlation_id.get()
        return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        api_error = exc.to_api_error()
        body = api_error.envelope()
        body["request_id"] = correlation_id.get()
        return JSONResponse(status_code=api_error.status_code, content=body)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                f"HTTP_{exc.status_code}",
                str(exc.detail),
                correlation_id.get(),
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())),
                "message": error.get("msg"),
                "type": error.get("type"),
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(
                ErrorCode.VALIDATION_ERROR.value,
                "Validation failed",
                correlation_id.get(),
                details=details,
            ),
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=_error_body(
                ErrorCode.RATE_LIMITED.value,
                "Too many requests",
                correlation_id.get(),
                message=f"Rate limit exceeded: {exc.detail}",
            ),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = correlation_id.get()
        logger.exception(
            "Unhandled exception",
            exc_info=exc,
            request_id=request_id,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                ErrorCode.INTERNAL_ERROR.value,
                "Internal server error",
                request_id,
                message=repr(exc) if expose_internal_errors else None,
            ),
        )
