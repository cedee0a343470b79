"""
Reserveo - Domain Errors
Exceptions raised by the service layer and mapped to HTTP responses in main.py.
"""

from typing import Optional


class ReserveoError(ValueError):
    """Base error for refused business operations."""

    status_code = 400
    default_code = "BUSINESS_RULE"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class BusinessRuleError(ReserveoError):
    status_code = 400
    default_code = "BUSINESS_RULE"


class NotFoundError(ReserveoError):
    status_code = 404
    default_code = "NOT_FOUND"


class PermissionDeniedError(ReserveoError):
    status_code = 403
    default_code = "PERMISSION_DENIED"


class ConflictError(ReserveoError):
    status_code = 409
    default_code = "CONFLICT"


class CheckinError(ReserveoError):
    """Check-in / check-out refusal, carries one of the CheckinErrorCode values."""

    status_code = 400
    default_code = "DATABASE_ERROR"


class CheckinErrorCode:
    SYSTEM_DISABLED = "SYSTEM_DISABLED"
    GROUP_DISABLED = "GROUP_DISABLED"
    NO_ACTIVE_RESERVATION = "NO_ACTIVE_RESERVATION"
    ALREADY_CHECKED_IN = "ALREADY_CHECKED_IN"
    NO_CHECKIN_FOUND = "NO_CHECKIN_FOUND"
    USER_BLOCKED = "USER_BLOCKED"
    INVALID_DATE = "INVALID_DATE"
    DATABASE_ERROR = "DATABASE_ERROR"
