"""
Reserveo - Incident Models
"""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum


class IncidentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"


class IncidentConfirmRequest(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=2000)


class IncidentDismissRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)


class IncidentNotesRequest(BaseModel):
    notes: str = Field(..., min_length=1, max_length=2000)
