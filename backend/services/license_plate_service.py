"""
Reserveo - License Plate Service
Registration, admin approval and permits (electric charger, disability)
of users' license plates.
"""

from typing import Optional, Dict, Any, List
from datetime import date, timedelta
import logging
import re

from database.firebase_db import get_db, FirebaseDB
from models.notification import NotificationType, NotificationPriority
from services.notification_service import get_notification_service
from utils.errors import BusinessRuleError, ConflictError, NotFoundError, PermissionDeniedError
from utils.helpers import utcnow, local_today, mask_plate, full_name

# Configure logging
logger = logging.getLogger(__name__)

# Spanish formats: current (1234ABC) and provincial (M1234AB, AB1234C...)
PLATE_PATTERN = re.compile(r"^([A-Z]{1,2}\d{4}[A-Z]{0,2}|\d{4}[A-Z]{3})$")
DEFAULT_REJECTION_REASON = "No se especificó motivo"


def sanitize_plate(value: Optional[str]) -> str:
    """Keep alphanumerics only, upper-cased."""
    return re.sub(r"[^A-Za-z0-9]", "", value or "").upper()


def is_valid_plate(value: str) -> bool:
    return 4 <= len(value) <= 10 and bool(PLATE_PATTERN.match(value))


def _permit_valid(plate: Dict[str, Any], permit: str, today: date) -> bool:
    if not plate.get(f"approved_{permit}"):
        return False
    expires = plate.get(f"{permit}_expires_at")
    return expires is None or date.fromisoformat(expires) >= today


class LicensePlateService:
    """Service class for license plates."""

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()

    async def _get_plate(self, plate_id: str) -> Dict[str, Any]:
        plate = await self.db.get_document(FirebaseDB.COLLECTION_PLATES, plate_id)
        if not plate:
            raise NotFoundError("Matrícula no encontrada")
        return plate

    async def add_plate(
        self,
        user_id: str,
        plate_number: str,
        requested_electric: bool = False,
        requested_disability: bool = False
    ) -> Dict[str, Any]:
        """
        Register a plate for approval.

        Raises:
            BusinessRuleError: Invalid format
            ConflictError: Approved for another user, or already registered
        """
        number = sanitize_plate(plate_number)
        if not is_valid_plate(number):
            raise BusinessRuleError(
                "Formato de matrícula no válido (ej: 1234ABC)", code="INVALID_PLATE_FORMAT"
            )

        existing = await self.db.query_documents(
            FirebaseDB.COLLECTION_PLATES,
            filters=[("plate_number", "==", number), ("is_deleted", "==", False)]
        )
        for plate in existing:
            if plate["user_id"] != user_id and plate.get("status") == "approved":
                raise ConflictError(
                    "Esta matrícula ya está registrada por otro usuario",
                    code="PLATE_TAKEN"
                )
            if plate["user_id"] == user_id:
                raise ConflictError("Ya tienes registrada esta matrícula", code="PLATE_DUPLICATE")

        plate = {
            "user_id": user_id,
            "plate_number": number,
            "status": "pending",
            "requested_electric": requested_electric,
            "requested_disability": requested_disability,
            "approved_electric": False,
            "approved_disability": False,
            "electric_expires_at": None,
            "disability_expires_at": None,
            "is_deleted": False,
            "deleted_at": None,
            "deleted_by_user": False,
            "created_at": utcnow(),
        }
        plate["id"] = await self.db.create_document(FirebaseDB.COLLECTION_PLATES, plate)
        logger.info(f"Plate {mask_plate(number)} registered by {user_id}")
        return plate

    async def list_user_plates(self, user_id: str) -> Dict[str, List[Dict[str, Any]]]:
        plates = await self.db.query_documents(
            FirebaseDB.COLLECTION_PLATES,
            filters=[("user_id", "==", user_id)],
            order_by="created_at",
            descending=True
        )
        return {
            "active": [p for p in plates if not p.get("is_deleted")],
            "deleted": [p for p in plates if p.get("is_deleted")],
        }

    async def delete_plate(self, user_id: str, plate_id: str) -> bool:
        """Soft delete by the owner."""
        plate = await self._get_plate(plate_id)
        if plate["user_id"] != user_id:
            raise PermissionDeniedError("Esta matrícula no te pertenece")
        if plate.get("is_deleted"):
            return True

        await self.db.update_document(FirebaseDB.COLLECTION_PLATES, plate_id, {
            "is_deleted": True,
            "deleted_at": utcnow(),
            "deleted_by_user": True,
        })
        logger.info(f"Plate {mask_plate(plate['plate_number'])} deleted by {user_id}")
        return True

    # ==================== ADMIN ====================

    async def list_pending(self) -> List[Dict[str, Any]]:
        plates = await self.db.query_documents(
            FirebaseDB.COLLECTION_PLATES,
            filters=[("status", "==", "pending"), ("is_deleted", "==", False)],
            order_by="created_at"
        )
        for plate in plates:
            owner = await self.db.get_document(FirebaseDB.COLLECTION_PROFILES, plate["user_id"])
            plate["owner_name"] = full_name(owner)
            plate["owner_email"] = (owner or {}).get("email")
        return plates

    async def approve(
        self,
        plate_id: str,
        admin_id: str,
        approve_electric: bool = False,
        approve_disability: bool = False
    ) -> Dict[str, Any]:
        plate = await self._get_plate(plate_id)
        if plate.get("is_deleted"):
            raise BusinessRuleError("La matrícula ha sido eliminada")

        # Approval is exclusive: nobody else may hold the same approved plate
        others = await self.db.query_documents(
            FirebaseDB.COLLECTION_PLATES,
            filters=[
                ("plate_number", "==", plate["plate_number"]),
                ("status", "==", "approved"),
                ("is_deleted", "==", False),
            ]
        )
        if any(o["id"] != plate_id for o in others):
            raise ConflictError(
                "Esta matrícula ya está aprobada para otro usuario", code="PLATE_TAKEN"
            )

        updates = {
            "status": "approved",
            "approved_at": utcnow(),
            "approved_by": admin_id,
            "approved_electric": approve_electric and plate.get("requested_electric", False),
            "approved_disability": approve_disability and plate.get("requested_disability", False),
            "rejection_reason": None,
        }
        await self.db.update_document(FirebaseDB.COLLECTION_PLATES, plate_id, updates)
        plate.update(updates)

        await get_notification_service().notify(
            plate["user_id"],
            NotificationType.LICENSE_PLATE_APPROVED,
            "Matrícula aprobada",
            f"Tu matrícula {plate['plate_number']} ha sido aprobada. Ya puedes reservar.",
            data={"plate_id": plate_id},
        )
        logger.info(f"Plate {mask_plate(plate['plate_number'])} approved by {admin_id}")
        return plate

    async def reject(
        self,
        plate_id: str,
        admin_id: str,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        plate = await self._get_plate(plate_id)
        updates = {
            "status": "rejected",
            "rejected_at": utcnow(),
            "rejected_by": admin_id,
            "rejection_reason": (reason or "").strip() or DEFAULT_REJECTION_REASON,
            "approved_electric": False,
            "approved_disability": False,
        }
        await self.db.update_document(FirebaseDB.COLLECTION_PLATES, plate_id, updates)
        plate.update(updates)

        await get_notification_service().notify(
            plate["user_id"],
            NotificationType.LICENSE_PLATE_REJECTED,
            "Matrícula rechazada",
            f"Tu matrícula {plate['plate_number']} ha sido rechazada. "
            f"Motivo: {updates['rejection_reason']}",
            data={"plate_id": plate_id},
            priority=NotificationPriority.HIGH,
        )
        logger.info(f"Plate {mask_plate(plate['plate_number'])} rejected by {admin_id}")
        return plate

    async def update_permissions(
        self,
        plate_id: str,
        updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Update granted permits. Expiration may be given in days from today
        (``*_expiration_days``) or as a date (``*_expires_at``).
        """
        plate = await self._get_plate(plate_id)
        values: Dict[str, Any] = {}
        today = local_today()

        for permit in ("electric", "disability"):
            granted = updates.get(f"approved_{permit}")
            if granted is not None:
                values[f"approved_{permit}"] = granted
                if not granted:
                    values[f"{permit}_expires_at"] = None

            days = updates.get(f"{permit}_expiration_days")
            expires_at = updates.get(f"{permit}_expires_at")
            if days:
                values[f"{permit}_expires_at"] = (today + timedelta(days=days)).isoformat()
            elif expires_at:
                if expires_at < today:
                    raise BusinessRuleError("La fecha de caducidad debe ser futura")
                values[f"{permit}_expires_at"] = expires_at.isoformat()

        if values:
            await self.db.update_document(FirebaseDB.COLLECTION_PLATES, plate_id, values)
            plate.update(values)
        return plate

    # ==================== LOOKUPS ====================

    async def get_approved_plates(self, user_id: str) -> List[Dict[str, Any]]:
        return await self.db.query_documents(
            FirebaseDB.COLLECTION_PLATES,
            filters=[
                ("user_id", "==", user_id),
                ("status", "==", "approved"),
                ("is_deleted", "==", False),
            ]
        )

    async def has_approved_plate(self, user_id: str) -> bool:
        return bool(await self.get_approved_plates(user_id))

    async def find_user_by_plate(self, plate_number: str) -> Optional[str]:
        number = sanitize_plate(plate_number)
        if not number:
            return None
        plates = await self.db.query_documents(
            FirebaseDB.COLLECTION_PLATES,
            filters=[
                ("plate_number", "==", number),
                ("status", "==", "approved"),
                ("is_deleted", "==", False),
            ],
            limit=1
        )
        return plates[0]["user_id"] if plates else None

    async def has_valid_electric_permit(self, user_id: str) -> bool:
        today = local_today()
        return any(_permit_valid(p, "electric", today) for p in await self.get_approved_plates(user_id))

    async def has_valid_disability_permit(self, user_id: str) -> bool:
        today = local_today()
        return any(_permit_valid(p, "disability", today) for p in await self.get_approved_plates(user_id))


# Singleton instance
_license_plate_service: Optional[LicensePlateService] = None


def get_license_plate_service() -> LicensePlateService:
    """Get singleton license plate service instance."""
    global _license_plate_service
    if _license_plate_service is None:
        _license_plate_service = LicensePlateService()
    return _license_plate_service
