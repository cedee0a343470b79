"""
Reserveo - User Service
Profiles of authenticated users and their personal statistics.
"""

from typing import Optional, Dict, Any
import logging

from database.firebase_db import get_db, FirebaseDB
from models.user import AppRole, TokenPayload
from models.reservation import ReservationStatus
from utils.helpers import utcnow, local_today

# Configure logging
logger = logging.getLogger(__name__)


class UserService:
    """Service class for user profiles."""

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()

    async def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.get_document(FirebaseDB.COLLECTION_PROFILES, user_id)

    async def get_or_create_profile(self, token: TokenPayload) -> Dict[str, Any]:
        """
        Load the caller's profile, creating it on first sign-in with the
        general role.
        """
        profile = await self.get_profile(token.uid)
        if profile:
            if token.email and profile.get("email") != token.email:
                await self.db.update_document(
                    FirebaseDB.COLLECTION_PROFILES, token.uid, {"email": token.email}
                )
                profile["email"] = token.email
            return profile

        first_name, _, last_name = (token.name or "").partition(" ")
        profile = {
            "email": token.email,
            "first_name": first_name or None,
            "last_name": last_name or None,
            "phone": None,
            "roles": [AppRole.GENERAL.value],
            "is_blocked": False,
            "is_deactivated": False,
            "email_notifications": True,
            "checkin_reminders": True,
            "created_at": utcnow(),
        }
        await self.db.set_document(FirebaseDB.COLLECTION_PROFILES, token.uid, profile, merge=False)
        logger.info(f"Profile created for {token.uid}")
        profile["id"] = token.uid
        return profile

    async def update_profile(self, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        values = {k: v for k, v in updates.items() if v is not None}
        if values:
            await self.db.update_document(FirebaseDB.COLLECTION_PROFILES, user_id, values)
        return await self.get_profile(user_id)

    async def get_user_stats(self, user_id: str) -> Dict[str, Any]:
        reservations = await self.db.query_documents(
            FirebaseDB.COLLECTION_RESERVATIONS, filters=[("user_id", "==", user_id)]
        )
        checkins = await self.db.query_documents(
            FirebaseDB.COLLECTION_CHECKINS, filters=[("user_id", "==", user_id)]
        )
        warnings = await self.db.query_documents(
            FirebaseDB.COLLECTION_WARNINGS, filters=[("user_id", "==", user_id)]
        )
        today = local_today().isoformat()

        def count(status: ReservationStatus) -> int:
            return sum(1 for r in reservations if r["status"] == status.value)

        return {
            "total_reservations": len(reservations),
            "upcoming_reservations": sum(
                1 for r in reservations
                if r["status"] == ReservationStatus.ACTIVE.value and r["reservation_date"] >= today
            ),
            "completed_reservations": count(ReservationStatus.COMPLETED),
            "cancelled_reservations": count(ReservationStatus.CANCELLED),
            "checkins": len(checkins),
            "late_checkins": sum(1 for c in checkins if c.get("was_late")),
            "warnings": len(warnings),
        }


# Singleton instance
_user_service: Optional[UserService] = None


def get_user_service() -> UserService:
    """Get singleton user service instance."""
    global _user_service
    if _user_service is None:
        _user_service = UserService()
    return _user_service
