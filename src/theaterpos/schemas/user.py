from pydantic import Field

from src.theaterpos.schemas.base import CamelModel


class UserRead(CamelModel):
    id: str
    username: str
    role: str
    user_type: str
    tenant_id: str | None = None
    tenant_name: str | None = None
    full_name: str | None = None
    role_id: str | None = None
    permissions: list[dict] = Field(default_factory=list)
