"""Identifier and token canonicalisation.

Every identifier that crosses a trust boundary (token claims, path and
query parameters, request bodies) passes through canonical_id() before it
is compared. Raw database values are never string-compared directly.
"""

import re
from typing import Any, Final
from uuid import UUID

from src.theaterpos.core.exceptions import AuthError, ErrorCode

JWT_SEGMENT_COUNT: Final[int] = 3
PIN_REGEX: Final[str] = r"^\d{4}$"

_PIN_PATTERN: Final[re.Pattern[str]] = re.compile(PIN_REGEX)
_WRAPPING_QUOTES: Final[tuple[str, ...]] = ('"', "'")


def strip_wrapping_quotes(value: str) -> str:
    """Remove one or more layers of matching wrapping quotes."""
    while len(value) >= 2 and value[0] == value[-1] and value[0] in _WRAPPING_QUOTES:
        value = value[1:-1].strip()
    return value


def canonical_id(value: Any) -> str | None:
    """Coerce an identifier to its canonical string form.

    UUIDs (objects or strings in any case, with or without braces) become
    the lower-case hyphenated form. Other strings are trimmed and stripped
    of wrapping quotes. Empty values become None.
    """
    if value is None:
        return None
    if isinstance(value, UUID):
        return str(value)
    text = strip_wrapping_quotes(str(value).strip())
    if not text or text.lower() in ("none", "null", "undefined"):
        return None
    try:
        return str(UUID(text))
    except ValueError:
        return text


def same_id(left: Any, right: Any) -> bool:
    """Compare two identifiers after canonicalisation. None never matches."""
    a, b = canonical_id(left), canonical_id(right)
    return a is not None and a == b


def normalize_token(raw: str | None) -> str:
    """Trim and unquote a bearer token, then check its shape.

    Raises:
        AuthError: TOKEN_MISSING if nothing is left, TOKEN_MALFORMED if the
            token does not have exactly three dot-separated segments.
    """
    if raw is None:
        raise AuthError("Access token required", code=ErrorCode.TOKEN_MISSING)
    token = strip_wrapping_quotes(raw.strip())
    if not token or token.lower() in ("null", "undefined"):
        raise AuthError("Access token required", code=ErrorCode.TOKEN_MISSING)
    if len(token.split(".")) != JWT_SEGMENT_COUNT:
        raise AuthError("Token is malformed", code=ErrorCode.TOKEN_MALFORMED)
    return token


def extract_bearer(authorization: str | None) -> str | None:
    """Pull the token out of an Authorization header value."""
    if authorization is None:
        return None
    value = authorization.strip()
    if value[:7].lower() == "bearer ":
        return value[7:]
    return value or None


def canonical_pin(pin: Any) -> str:
    """PINs compare as exact strings after trimming."""
    return str(pin).strip() if pin is not None else ""


def is_valid_pin_format(pin: str) -> bool:
    return bool(_PIN_PATTERN.match(pin))
