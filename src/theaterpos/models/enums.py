"""Shared enums for models."""

from enum import Enum


class AdminRole(str, Enum):
    """Global administrator role."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"


class TheaterUserType(str, Enum):
    """Kind of theater-scoped account."""

    THEATER_USER = "theater_user"
    THEATER_ADMIN = "theater_admin"


class TaxMode(str, Enum):
    """Whether listed prices include GST."""

    EXCLUDE = "EXCLUDE"
    INCLUDE = "INCLUDE"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    COD = "cod"
    CARD = "card"
    UPI = "upi"
    ONLINE = "online"


class OrderSource(str, Enum):
    QR_CODE = "qr_code"
    POS = "pos"
    KIOSK = "kiosk"


class AgentState(str, Enum):
    """Lifecycle of a theater's print agent."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    ERROR = "error"
