"""
Reserveo - Waitlist Models
Entries, offers and audit log actions of the waitlist system.
"""

from pydantic import BaseModel, Field
from typing import List
from datetime import date
from enum import Enum


class WaitlistEntryStatus(str, Enum):
    ACTIVE = "active"
    OFFER_PENDING = "offer_pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WaitlistOfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    # Withdrawn because the entry was closed
    CANCELLED = "cancelled"


class WaitlistLogAction(str, Enum):
    ENTRY_CREATED = "entry_created"
    ENTRY_CANCELLED = "entry_cancelled"
    OFFER_CREATED = "offer_created"
    OFFER_ACCEPTED = "offer_accepted"
    OFFER_REJECTED = "offer_rejected"
    OFFER_EXPIRED = "offer_expired"
    PENALTY_APPLIED = "penalty_applied"
    CLEANUP_EXECUTED = "cleanup_executed"


class WaitlistRegisterRequest(BaseModel):
    """Join the queues of one or more groups for the same day."""
    group_ids: List[str] = Field(..., min_length=1, max_length=20)
    reservation_date: date
