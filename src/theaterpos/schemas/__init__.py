from src.theaterpos.schemas.agent import AgentStatusList, AgentStatusRead
from src.theaterpos.schemas.auth import (
    AgentTokenRequest,
    CheckSessionResponse,
    LoginRequest,
    LogoutResponse,
    PendingAuth,
    PinRequiredResponse,
    RefreshRequest,
    TokenResponse,
    ValidatePinRequest,
)
from src.theaterpos.schemas.order import (
    CustomerIn,
    OrderAccepted,
    OrderCreate,
    OrderItemIn,
    OrderRead,
)
from src.theaterpos.schemas.user import UserRead

__all__ = [
    # Agent
    "AgentStatusList",
    "AgentStatusRead",
    # Auth
    "AgentTokenRequest",
    "CheckSessionResponse",
    "LoginRequest",
    "LogoutResponse",
    "PendingAuth",
    "PinRequiredResponse",
    "RefreshRequest",
    "TokenResponse",
    "ValidatePinRequest",
    # Order
    "CustomerIn",
    "OrderAccepted",
    "OrderCreate",
    "OrderItemIn",
    "OrderRead",
    # User
    "UserRead",
]
