"""Security utilities - crypto, principals and validators.

Re-exports all security-related functions for convenience.
"""

from src.theaterpos.core.security.crypto import (
    DUMMY_PASSWORD_HASH,
    TokenType,
    create_access_token,
    create_agent_grant,
    create_customer_stream_token,
    create_pending_auth_token,
    create_refresh_token,
    decode_token,
    hash_password,
    hash_token,
    verify_password,
)
from src.theaterpos.core.security.principal import (
    AGENT_USER_TYPE,
    GLOBAL_ADMIN_ROLES,
    Principal,
    agent_principal_id,
    customer_stream_key,
    tenant_stream_key,
)
from src.theaterpos.core.security.validators import (
    canonical_id,
    canonical_pin,
    extract_bearer,
    normalize_token,
    same_id,
)

__all__ = [
    # Crypto
    "DUMMY_PASSWORD_HASH",
    "TokenType",
    "create_access_token",
    "create_agent_grant",
    "create_customer_stream_token",
    "create_pending_auth_token",
    "create_refresh_token",
    "decode_token",
    "hash_password",
    "hash_token",
    "verify_password",
    # Principal
    "AGENT_USER_TYPE",
    "GLOBAL_ADMIN_ROLES",
    "Principal",
    "agent_principal_id",
    "customer_stream_key",
    "tenant_stream_key",
    # Validators
    "canonical_id",
    "canonical_pin",
    "extract_bearer",
    "normalize_token",
    "same_id",
]
