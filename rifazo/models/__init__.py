from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .draw import Currency, Draw, DrawPrize, DrawStatus  # noqa: F401
from .participation import Participation, PaymentStatus  # noqa: F401
from .result import DrawResult  # noqa: F401
from .audit import AuditAction, AuditEvent  # noqa: F401

__all__ = [
    "Base",
    "Currency",
    "Draw",
    "DrawPrize",
    "DrawStatus",
    "Participation",
    "PaymentStatus",
    "DrawResult",
    "AuditAction",
    "AuditEvent",
]
