"""Cryptographic utilities - password hashing, JWT tokens, and token hashing."""

from datetime import UTC, datetime, timedelta
from hashlib import sha256
from typing import Any
from uuid import uuid4

import argon2
from jose import JWTError, jwt

from src.theaterpos.core.config import get_settings
from src.theaterpos.core.security.principal import Principal


class TokenType:
    """Token type constants (the `type` claim)."""

    ACCESS = "access"
    REFRESH = "refresh"
    PENDING_PIN = "pending_pin"
    AGENT_GRANT = "agent_grant"
    CUSTOMER_STREAM = "customer_stream"


def hash_token(token: str) -> str:
    """Hash a token using SHA256 for indexed lookup."""
    return sha256(token.encode()).hexdigest()


def _create_password_hasher() -> argon2.PasswordHasher:
    """Create password hasher with settings from config."""
    settings = get_settings()
    return argon2.PasswordHasher(
        time_cost=settings.argon2_time_cost,
        memory_cost=settings.argon2_memory_cost,
        parallelism=settings.argon2_parallelism,
    )


_password_hasher = _create_password_hasher()


def hash_password(password: str) -> str:
    """Hash password using Argon2id."""
    return _password_hasher.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Verify password against hash. Returns False on any error."""
    try:
        _password_hasher.verify(hashed, password)
        return True
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False
    except argon2.exceptions.VerificationError:
        return False


# Verified against when no user matched, so unknown identifiers cost the same time
DUMMY_PASSWORD_HASH = hash_password("not-a-real-password")


def _signing_key(token_type: str) -> str:
    settings = get_settings()
    if token_type == TokenType.REFRESH:
        return settings.jwt_refresh_secret_key  # type: ignore[return-value]
    return settings.jwt_secret_key  # type: ignore[return-value]


def _encode(claims: dict[str, Any], token_type: str, lifetime: timedelta) -> tuple[str, datetime]:
    settings = get_settings()
    now = datetime.now(UTC)
    expire = now + lifetime
    to_encode = {
        **claims,
        "type": token_type,
        "iat": now,
        "exp": expire,
        # Unique per token so two tokens minted in the same second never collide
        "jti": str(uuid4()),
    }
    token: str = jwt.encode(  # type: ignore[assignment]
        to_encode,
        _signing_key(token_type),
        algorithm=settings.jwt_algorithm,
    )
    # Naive UTC, matching the TIMESTAMP columns
    return token, expire.replace(tzinfo=None)


def create_access_token(principal: Principal, expires_delta: timedelta | None = None) -> str:
    """Create JWT access token carrying the principal's claims."""
    settings = get_settings()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    token, _ = _encode(principal.to_claims(), TokenType.ACCESS, lifetime)
    return token


def create_refresh_token(principal: Principal) -> tuple[str, datetime]:
    """Create refresh token. Returns (token, expiry as naive UTC datetime)."""
    settings = get_settings()
    return _encode(
        principal.to_claims(),
        TokenType.REFRESH,
        timedelta(days=settings.refresh_token_expire_days),
    )


def create_pending_auth_token(user_id: str, tenant_id: str | None) -> str:
    """Short-lived proof that the password step succeeded.

    Carries no role claims, so it cannot pass as an access token.
    """
    settings = get_settings()
    token, _ = _encode(
        {"userId": user_id, "tenantId": tenant_id},
        TokenType.PENDING_PIN,
        timedelta(minutes=settings.pending_auth_expire_minutes),
    )
    return token


def create_agent_grant(tenant_id: str, issued_to: str) -> tuple[str, str, datetime]:
    """One-time delegated credential for starting a theater's print agent.

    Returns:
        Tuple of (token, jti, expires_at).
    """
    settings = get_settings()
    token, expires_at = _encode(
        {"tenantId": tenant_id, "issuedTo": issued_to, "role": "pos_agent"},
        TokenType.AGENT_GRANT,
        timedelta(minutes=settings.agent_grant_expire_minutes),
    )
    payload = jwt.get_unverified_claims(token)
    return token, payload["jti"], expires_at


def create_customer_stream_token(tenant_id: str, phone: str) -> str:
    """Token that only opens the customer's order notification stream."""
    settings = get_settings()
    principal = Principal(
        user_id=f"customer:{tenant_id}:{phone}",
        username=phone,
        role="customer",
        user_type="customer",
        tenant_id=tenant_id,
        extra={"phone": phone},
    )
    token, _ = _encode(
        principal.to_claims(),
        TokenType.CUSTOMER_STREAM,
        timedelta(minutes=settings.customer_stream_token_expire_minutes),
    )
    return token


def decode_token(token: str, expected_type: str | None = None) -> dict[str, Any] | None:
    """Decode and validate a JWT. Returns None on any error or type mismatch."""
    settings = get_settings()
    key_type = TokenType.REFRESH if expected_type == TokenType.REFRESH else TokenType.ACCESS
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            _signing_key(key_type),
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None
    if expected_type is not None and payload.get("type") != expected_type:
        return None
    return payload
