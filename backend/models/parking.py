"""
Reserveo - Parking Models
Defines the data models for parking groups, spots, blocked dates and settings.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import date

from models.user import AppRole


class ParkingGroupCreate(BaseModel):
    """Creation payload for a parking group."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    capacity: int = Field(default=0, ge=0)
    floor_plan_url: Optional[str] = None
    button_size: Optional[int] = Field(default=32, ge=8, le=128)
    is_incident_reserve: bool = Field(
        default=False,
        description="Only used to reassign users affected by an incident"
    )
    is_active: bool = True


class ParkingGroupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    capacity: Optional[int] = Field(default=None, ge=0)
    button_size: Optional[int] = Field(default=None, ge=8, le=128)
    is_incident_reserve: Optional[bool] = None


class GroupDeactivateRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class ScheduleDeactivationRequest(BaseModel):
    deactivation_date: date
    reason: Optional[str] = Field(default=None, max_length=500)


class ParkingSpotCreate(BaseModel):
    """Creation payload for a parking spot."""
    spot_number: str = Field(..., min_length=1, max_length=20)
    group_id: str = Field(..., description="Parking group the spot belongs to")
    spot_type: Optional[AppRole] = Field(
        default=None,
        description="Role required to book the spot (None: any role)"
    )
    is_accessible: bool = False
    has_charger: bool = False
    is_compact: bool = False
    is_active: bool = True
    position_x: Optional[float] = None
    position_y: Optional[float] = None

    @field_validator("spot_number")
    @classmethod
    def normalize_spot_number(cls, v: str) -> str:
        return v.strip().upper()


class ParkingSpotUpdate(BaseModel):
    spot_number: Optional[str] = Field(default=None, min_length=1, max_length=20)
    group_id: Optional[str] = None
    spot_type: Optional[AppRole] = None
    is_accessible: Optional[bool] = None
    has_charger: Optional[bool] = None
    is_compact: Optional[bool] = None
    position_x: Optional[float] = None
    position_y: Optional[float] = None


class SpotPosition(BaseModel):
    spot_id: str
    position_x: float
    position_y: float


class SpotPositionsUpdate(BaseModel):
    """Positions set in the floor-plan editor."""
    positions: List[SpotPosition]


class GroupAssignmentRequest(BaseModel):
    user_id: str
    group_id: str


class BlockDateRequest(BaseModel):
    """Block a day globally (group_id None) or for one group."""
    blocked_date: date
    reason: Optional[str] = Field(default=None, max_length=500)
    group_id: Optional[str] = None


class ReservationSettingsUpdate(BaseModel):
    advance_reservation_days: Optional[int] = Field(default=None, ge=1, le=90)
    daily_refresh_hour: Optional[int] = Field(default=None, ge=0, le=23)
    fast_reservation_threshold_minutes: Optional[int] = Field(default=None, ge=1, le=120)
    waitlist_enabled: Optional[bool] = None
    waitlist_acceptance_time_minutes: Optional[int] = Field(default=None, ge=5, le=1440)
    waitlist_max_simultaneous: Optional[int] = Field(default=None, ge=1, le=20)
    waitlist_priority_by_role: Optional[bool] = None
    waitlist_penalty_enabled: Optional[bool] = None
    waitlist_penalty_threshold: Optional[int] = Field(default=None, ge=1, le=20)
    waitlist_penalty_duration_days: Optional[int] = Field(default=None, ge=1, le=90)


class CheckinSettingsUpdate(BaseModel):
    system_enabled: Optional[bool] = None
    default_checkin_window_hours: Optional[int] = Field(default=None, ge=1, le=24)
    grace_period_minutes: Optional[int] = Field(default=None, ge=0, le=120)
    checkin_infraction_threshold: Optional[int] = Field(default=None, ge=1, le=20)
    checkout_infraction_threshold: Optional[int] = Field(default=None, ge=1, le=20)
    temporary_block_days: Optional[int] = Field(default=None, ge=1, le=90)
    send_checkin_reminders: Optional[bool] = None


class GroupCheckinConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    use_custom_config: Optional[bool] = None
    custom_checkin_window_hours: Optional[int] = Field(default=None, ge=1, le=24)

    @model_validator(mode="after")
    def custom_window_required(self):
        if self.use_custom_config and self.custom_checkin_window_hours is None:
            raise ValueError("custom_checkin_window_hours is required with use_custom_config")
        return self
