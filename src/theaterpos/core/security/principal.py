"""Authenticated principal carried by access tokens."""

from dataclasses import dataclass, field
from typing import Any, Final

from src.theaterpos.core.security.validators import canonical_id

GLOBAL_ADMIN_ROLES: Final[frozenset[str]] = frozenset({"super_admin", "admin"})
SUPER_ADMIN_ROLE: Final[str] = "super_admin"
AGENT_USER_TYPE: Final[str] = "pos_agent"
CUSTOMER_USER_TYPE: Final[str] = "customer"


@dataclass(frozen=True)
class Principal:
    """Identity claims shared by every token type.

    Field names follow the wire format of the token payload
    (userId, username, role, userType, tenantId).
    """

    user_id: str
    username: str
    role: str
    user_type: str
    tenant_id: str | None = None
    role_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_global_admin(self) -> bool:
        return any(
            (value or "").strip().lower() in GLOBAL_ADMIN_ROLES
            for value in (self.role, self.user_type)
        )

    @property
    def is_super_admin(self) -> bool:
        return any(
            (value or "").strip().lower() == SUPER_ADMIN_ROLE
            for value in (self.role, self.user_type)
        )

    @property
    def is_agent(self) -> bool:
        return self.user_type == AGENT_USER_TYPE

    @property
    def is_customer(self) -> bool:
        return self.user_type == CUSTOMER_USER_TYPE

    @property
    def stream_key(self) -> str:
        """Notification bus address for this principal."""
        if self.is_agent and self.tenant_id:
            return tenant_stream_key(self.tenant_id)
        if self.is_customer and self.tenant_id:
            return customer_stream_key(self.tenant_id, self.extra.get("phone", ""))
        return self.user_id

    def to_claims(self) -> dict[str, Any]:
        claims: dict[str, Any] = {
            "userId": self.user_id,
            "username": self.username,
            "role": self.role,
            "userType": self.user_type,
            "tenantId": self.tenant_id,
        }
        if self.role_id:
            claims["roleId"] = self.role_id
        claims.update(self.extra)
        return claims

    @classmethod
    def from_claims(cls, payload: dict[str, Any]) -> "Principal":
        known = {"userId", "username", "role", "userType", "tenantId", "roleId"}
        registered = {"type", "jti", "iat", "exp", "sub"}
        return cls(
            user_id=canonical_id(payload.get("userId") or payload.get("sub")) or "",
            username=str(payload.get("username") or ""),
            role=str(payload.get("role") or ""),
            user_type=str(payload.get("userType") or payload.get("role") or ""),
            tenant_id=canonical_id(payload.get("tenantId")),
            role_id=canonical_id(payload.get("roleId")),
            extra={k: v for k, v in payload.items() if k not in known | registered},
        )


def tenant_stream_key(tenant_id: str) -> str:
    return f"tenant:{canonical_id(tenant_id)}"


def customer_stream_key(tenant_id: str, phone: str) -> str:
    return f"customer:{canonical_id(tenant_id)}:{phone.strip()}"


def agent_principal_id(tenant_id: str) -> str:
    """Session owner id used for a theater's print agent."""
    return f"agent:{canonical_id(tenant_id)}"
