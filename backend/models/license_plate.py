"""
Reserveo - License Plate Models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import date


class LicensePlateCreate(BaseModel):
    """Plate registration by its owner, pending admin approval."""
    plate_number: str = Field(..., min_length=4, max_length=15)
    requested_electric: bool = False
    requested_disability: bool = False


class LicensePlateApprove(BaseModel):
    approve_electric: bool = False
    approve_disability: bool = False


class LicensePlateReject(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class PlatePermissionsUpdate(BaseModel):
    """
    Update granted permissions. An expiration can be given either as a number
    of days from today or as an explicit date, not both.
    """
    approved_electric: Optional[bool] = None
    approved_disability: Optional[bool] = None
    electric_expiration_days: Optional[int] = Field(default=None, ge=1, le=3650)
    electric_expires_at: Optional[date] = None
    disability_expiration_days: Optional[int] = Field(default=None, ge=1, le=3650)
    disability_expires_at: Optional[date] = None

    @model_validator(mode="after")
    def one_expiration_form(self):
        if self.electric_expiration_days and self.electric_expires_at:
            raise ValueError("Use either electric_expiration_days or electric_expires_at")
        if self.disability_expiration_days and self.disability_expires_at:
            raise ValueError("Use either disability_expiration_days or disability_expires_at")
        return self
