"""
Reserveo - Reservation Models
Data models for reservations, validation results and check-in.
"""

from pydantic import BaseModel, Field
from typing import Optional
from datetime import date
from enum import Enum


class ReservationStatus(str, Enum):
    """Lifecycle of a reservation."""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CancellationTrigger(str, Enum):
    """Who or what cancelled a reservation (cancellation log)."""
    USER = "user"
    ADMIN = "admin"
    BLOCKED_DATE = "blocked_date"
    GROUP_DEACTIVATED = "group_deactivated"
    GROUP_ACCESS_REMOVED = "group_access_removed"
    USER_DEACTIVATED = "user_deactivated"
    USER_BLOCKED = "user_blocked"
    CHECKIN_NO_SHOW = "checkin_no_show"
    INCIDENT_REASSIGNMENT = "incident_reassignment"
    ADMIN_INCIDENT_CONFIRMATION = "admin_incident_confirmation"


class ReservationCreateRequest(BaseModel):
    """Booking request for one spot on one day."""
    spot_id: str = Field(..., description="Parking spot ID")
    reservation_date: date = Field(..., description="Day of the reservation")


class ChangeSpotRequest(BaseModel):
    spot_id: str = Field(..., description="New parking spot ID")


class ReservationValidation(BaseModel):
    """Outcome of validate_spot_reservation."""
    is_valid: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None


class CheckinResult(BaseModel):
    success: bool = True
    checkin_id: str
    reservation_id: str
    checkin_at: str
    was_late: bool = False
    message: str


class CheckoutResult(BaseModel):
    success: bool = True
    checkin_id: str
    reservation_id: str
    checkout_at: str
    message: str


class InfractionType(str, Enum):
    CHECKIN = "checkin"
    CHECKOUT = "checkout"


class BlockType(str, Enum):
    MANUAL = "manual"
    AUTOMATIC_CHECKIN = "automatic_checkin"
    AUTOMATIC_CHECKOUT = "automatic_checkout"


class CheckinNotificationType(str, Enum):
    CHECKIN_REMINDER = "checkin_reminder"
    LATE_CHECKIN_WARNING = "late_checkin_warning"
    INFRACTION_NOTICE = "infraction_notice"
