from typing import Literal, Self

from pydantic import Field, model_validator

from src.theaterpos.schemas.base import CamelModel
from src.theaterpos.schemas.user import UserRead


class LoginRequest(CamelModel):
    """Password step. `username` may be an admin email or a theater username."""

    username: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    password: str = Field(min_length=1, max_length=255)

    @model_validator(mode="after")
    def require_identifier(self) -> Self:
        if not (self.username or self.email or "").strip():
            raise ValueError("username or email is required")
        return self

    @property
    def identifier(self) -> str:
        return (self.username or self.email or "").strip()


class PendingAuth(CamelModel):
    """Transient envelope between the password step and the PIN step."""

    user_id: str
    login_username: str
    tenant_id: str
    ephemeral_secret: str


class PinRequiredResponse(CamelModel):
    is_pin_required: Literal[True] = True
    pending_auth: PendingAuth
    message: str = "PIN required"


class TokenResponse(CamelModel):
    token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


class ValidatePinRequest(CamelModel):
    user_id: str = Field(min_length=1, max_length=100)
    pin: str = Field(min_length=1, max_length=20)
    tenant_id: str = Field(min_length=1, max_length=100)
    login_username: str | None = None
    ephemeral_secret: str | None = None


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class LogoutResponse(CamelModel):
    success: bool = True
    message: str = "Logged out"


class CheckSessionResponse(CamelModel):
    valid: bool
    user: UserRead


class AgentTokenRequest(CamelModel):
    grant: str = Field(min_length=1)
