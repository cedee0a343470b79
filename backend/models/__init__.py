"""
Reserveo - Models Package
Contient tous les modèles Pydantic pour l'application.
"""

from models.user import (
    AppRole,
    UserProfile,
    TokenPayload,
    role_priority,
)
from models.reservation import (
    ReservationStatus,
    ReservationCreateRequest,
    ReservationValidation,
)
from models.waitlist import (
    WaitlistEntryStatus,
    WaitlistOfferStatus,
    WaitlistLogAction,
)
from models.incident import IncidentStatus
from models.notification import (
    NotificationType,
    NotificationCategory,
    NotificationPriority,
)

__all__ = [
    # User Models
    "AppRole",
    "UserProfile",
    "TokenPayload",
    "role_priority",
    # Reservation Models
    "ReservationStatus",
    "ReservationCreateRequest",
    "ReservationValidation",
    # Waitlist Models
    "WaitlistEntryStatus",
    "WaitlistOfferStatus",
    "WaitlistLogAction",
    # Incident / Notification
    "IncidentStatus",
    "NotificationType",
    "NotificationCategory",
    "NotificationPriority",
]
