from src.theaterpos.services.auth_service import AuthContext, AuthService, PinResult
from src.theaterpos.services.notification_bus import NotificationBus, notification_bus
from src.theaterpos.services.order_service import IngestResult, OrderService
from src.theaterpos.services.tenant_authorizer import TenantAuthorizer
from src.theaterpos.services.user_resolver import UserResolver, default_resolver

__all__ = [
    "AuthContext",
    "AuthService",
    "IngestResult",
    "NotificationBus",
    "OrderService",
    "PinResult",
    "TenantAuthorizer",
    "UserResolver",
    "default_resolver",
    "notification_bus",
]
