"""
Reserveo - Utilities Package
Helper functions, domain errors, cache and background task scheduler.
"""

from utils.errors import (
    ReserveoError,
    BusinessRuleError,
    NotFoundError,
    PermissionDeniedError,
    ConflictError,
    CheckinError,
)
from utils.cache import TTLCache

__all__ = [
    "ReserveoError",
    "BusinessRuleError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "CheckinError",
    "TTLCache",
]
