"""
Reserveo - Incident Service
Reports of an occupied reserved spot: offender lookup by plate, automatic
reassignment to another spot, evidence photos, and admin review with warnings.
"""

from typing import Optional, Dict, Any, List, Tuple
from datetime import date
import logging

from database.firebase_db import get_db, FirebaseDB
from models.incident import IncidentStatus
from models.notification import NotificationType, NotificationPriority
from models.reservation import ReservationStatus, CancellationTrigger
from services.license_plate_service import get_license_plate_service, sanitize_plate
from services.notification_service import get_notification_service
from services.reservation_service import get_reservation_service, spot_allowed_for_roles
from services.storage_service import get_storage_service, INCIDENT_PHOTOS_DIR
from config import get_settings
from utils.errors import BusinessRuleError, ConflictError, NotFoundError, PermissionDeniedError
from utils.helpers import utcnow, local_today, mask_plate, full_name

# Configure logging
logger = logging.getLogger(__name__)

ALLOWED_PHOTO_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/heic": "heic",
    "image/heif": "heic",
}
OFFENDER_WARNING_REASON = "Ocupó la plaza reservada de otro usuario"


def validate_photo(content_type: Optional[str], size: int) -> str:
    """
    Check the evidence photo and return its file extension.

    Raises:
        BusinessRuleError: Unsupported type or too large
    """
    extension = ALLOWED_PHOTO_TYPES.get((content_type or "").lower())
    if not extension:
        raise BusinessRuleError(
            "Formato de imagen no soportado (JPEG, PNG o HEIC)", code="INVALID_PHOTO_TYPE"
        )
    settings = get_settings()
    if size > settings.incident_photo_max_bytes:
        raise BusinessRuleError(
            f"La imagen supera {settings.incident_photo_max_mb}MB", code="PHOTO_TOO_LARGE"
        )
    return extension


class IncidentService:
    """Service class for incident reports."""

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()

    async def _get_incident(self, incident_id: str) -> Dict[str, Any]:
        incident = await self.db.get_document(FirebaseDB.COLLECTION_INCIDENTS, incident_id)
        if not incident:
            raise NotFoundError("Incidencia no encontrada")
        return incident

    async def find_available_spot_for_incident(
        self,
        user_id: str,
        reservation_date: date,
        exclude_spot_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Free spot for a reporter: the user's own groups first, then the
        incident reserve groups. The original spot is never returned.
        """
        reservations = get_reservation_service()
        profile = await self.db.get_document(FirebaseDB.COLLECTION_PROFILES, user_id) or {}
        roles = profile.get("roles") or []
        own_groups = await reservations.get_user_group_ids(user_id)
        reserve_groups = [
            g["id"] for g in await self.db.query_documents(
                FirebaseDB.COLLECTION_GROUPS,
                filters=[("is_incident_reserve", "==", True), ("is_active", "==", True)]
            )
        ]

        for group_ids in (own_groups, reserve_groups):
            for group_id in group_ids:
                if await reservations.is_date_blocked(reservation_date, group_id):
                    continue
                for spot in await reservations.get_available_spots(group_id, reservation_date):
                    if spot["is_available"] and spot["id"] != exclude_spot_id \
                            and spot_allowed_for_roles(spot, roles):
                        return spot
        return None

    async def create_report(
        self,
        reporter_id: str,
        reservation_id: str,
        description: str,
        offending_plate: Optional[str] = None,
        photo: Optional[Tuple[bytes, str]] = None
    ) -> Dict[str, Any]:
        """
        Report that someone occupies the reporter's spot today.

        Args:
            reporter_id: User filing the report
            reservation_id: The reporter's reservation
            description: Free text
            offending_plate: Plate of the car occupying the spot
            photo: Optional (bytes, content_type) evidence

        Returns:
            Dict: Incident with reassignment information
        """
        extension = validate_photo(photo[1], len(photo[0])) if photo else None

        reservations = get_reservation_service()
        reservation = await reservations.get_reservation(reservation_id)
        if reservation["user_id"] != reporter_id:
            raise PermissionDeniedError("Esta reserva no te pertenece")
        if reservation["status"] != ReservationStatus.ACTIVE.value:
            raise BusinessRuleError("La reserva no está activa", code="RESERVATION_NOT_ACTIVE")
        if reservation["reservation_date"] != local_today().isoformat():
            raise BusinessRuleError(
                "Solo puedes reportar incidencias de la reserva de hoy", code="INVALID_DATE"
            )

        plate = sanitize_plate(offending_plate)
        offending_user_id = None
        if plate:
            offending_user_id = await get_license_plate_service().find_user_by_plate(plate)
            if offending_user_id == reporter_id:
                offending_user_id = None

        incident = {
            "reporter_id": reporter_id,
            "reservation_id": reservation_id,
            "original_spot_id": reservation["spot_id"],
            "reservation_date": reservation["reservation_date"],
            "description": description,
            "offending_license_plate": plate or None,
            "offending_user_id": offending_user_id,
            "status": IncidentStatus.PENDING.value,
            "photo_path": None,
            "reassigned_spot_id": None,
            "reassigned_reservation_id": None,
            "admin_notes": None,
            "created_at": utcnow(),
        }
        incident["id"] = await self.db.create_document(FirebaseDB.COLLECTION_INCIDENTS, incident)

        updates: Dict[str, Any] = {}
        reservation_date = date.fromisoformat(reservation["reservation_date"])
        spot = await self.find_available_spot_for_incident(
            reporter_id, reservation_date, reservation["spot_id"]
        )
        if spot:
            try:
                # The original is cancelled in the same transaction
                new_id = await self.db.create_reservation_transaction({
                    "user_id": reporter_id,
                    "spot_id": spot["id"],
                    "group_id": spot["group_id"],
                    "spot_number": spot.get("spot_number"),
                    "reservation_date": reservation["reservation_date"],
                    "status": ReservationStatus.ACTIVE.value,
                    "source": "incident",
                    "incident_id": incident["id"],
                    "cancelled_at": None,
                }, replaces=reservation["id"])
            except ConflictError as e:
                logger.warning(
                    f"Reassignment to spot {spot['id']} failed for incident {incident['id']}: {e.code}"
                )
                spot = None
            else:
                await reservations._cancel(
                    reservation, reporter_id, CancellationTrigger.INCIDENT_REASSIGNMENT,
                    "Plaza ocupada, reasignada por incidencia", process_waitlist=False
                )
                updates.update({"reassigned_spot_id": spot["id"], "reassigned_reservation_id": new_id})

        photo_path = None
        if photo:
            path = f"{INCIDENT_PHOTOS_DIR}/{reporter_id}/{incident['id']}.{extension}"
            try:
                photo_path = get_storage_service().upload(path, photo[0], photo[1])
                updates["photo_path"] = photo_path
            except Exception as e:
                logger.error(f"Photo upload failed for incident {incident['id']}: {e}")

        if updates:
            try:
                await self.db.update_document(FirebaseDB.COLLECTION_INCIDENTS, incident["id"], updates)
            except Exception:
                if photo_path:
                    get_storage_service().delete(photo_path)
                raise
            incident.update(updates)

        notifications = get_notification_service()
        await notifications.notify_admins(
            NotificationType.INCIDENT_REPORTED,
            "Nueva incidencia",
            f"Plaza ocupada el {reservation['reservation_date']}"
            + (f" por {plate}" if plate else ""),
            data={"incident_id": incident["id"]},
        )
        if spot:
            await notifications.notify(
                reporter_id,
                NotificationType.INCIDENT_REASSIGNMENT,
                "Plaza reasignada",
                f"Te hemos asignado la plaza {spot.get('spot_number')}.",
                data={"incident_id": incident["id"], "spot_id": spot["id"]},
                priority=NotificationPriority.HIGH,
                send_email=False,
            )

        logger.info(
            f"Incident {incident['id']} by {reporter_id}, plate {mask_plate(plate)}, "
            f"reassigned={bool(spot)}"
        )
        incident["reassigned_spot_number"] = spot.get("spot_number") if spot else None
        incident["photo_url"] = get_storage_service().signed_url(photo_path) if photo_path else None
        return incident

    async def _enrich(self, incident: Dict[str, Any]) -> Dict[str, Any]:
        reservations = get_reservation_service()
        reporter = await self.db.get_document(FirebaseDB.COLLECTION_PROFILES, incident["reporter_id"])
        incident["reporter_name"] = full_name(reporter)
        if incident.get("offending_user_id"):
            offender = await self.db.get_document(
                FirebaseDB.COLLECTION_PROFILES, incident["offending_user_id"]
            )
            incident["offending_user_name"] = full_name(offender)
            incident["offending_user_warnings"] = await self.get_user_warning_count(incident["offending_user_id"])
        else:
            incident["offending_user_name"] = None
            incident["offending_user_warnings"] = 0

        for key in ("original_spot_id", "reassigned_spot_id"):
            spot = await reservations.get_spot(incident[key]) if incident.get(key) else None
            incident[key.replace("_id", "_number")] = (spot or {}).get("spot_number")

        path = get_storage_service().path_from_url(incident.get("photo_path"))
        incident["photo_url"] = get_storage_service().signed_url(path) if path else None
        return incident

    async def list_incidents(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = [("status", "==", status)] if status else []
        incidents = await self.db.query_documents(
            FirebaseDB.COLLECTION_INCIDENTS,
            filters=filters,
            order_by="created_at",
            descending=True
        )
        return [await self._enrich(i) for i in incidents]

    async def list_user_incidents(self, reporter_id: str) -> List[Dict[str, Any]]:
        incidents = await self.db.query_documents(
            FirebaseDB.COLLECTION_INCIDENTS,
            filters=[("reporter_id", "==", reporter_id)],
            order_by="created_at",
            descending=True
        )
        return [await self._enrich(i) for i in incidents]

    async def confirm(
        self,
        incident_id: str,
        admin_id: str,
        notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Confirm an incident. A known offender receives a warning and loses
        their reservation of the original spot on that day.
        """
        incident = await self._get_incident(incident_id)
        if incident["status"] == IncidentStatus.CONFIRMED.value:
            raise ConflictError("La incidencia ya está confirmada", code="ALREADY_CONFIRMED")

        now = utcnow()
        updates = {
            "status": IncidentStatus.CONFIRMED.value,
            "confirmed_by": admin_id,
            "confirmed_at": now,
            "admin_notes": notes or incident.get("admin_notes"),
        }
        await self.db.update_document(FirebaseDB.COLLECTION_INCIDENTS, incident_id, updates)
        incident.update(updates)

        notifications = get_notification_service()
        offender = incident.get("offending_user_id")
        if offender:
            warning_id = await self.db.create_document(FirebaseDB.COLLECTION_WARNINGS, {
                "user_id": offender,
                "issued_by": admin_id,
                "incident_id": incident_id,
                "reason": OFFENDER_WARNING_REASON,
                "notes": notes,
                "auto_generated": False,
                "viewed_at": None,
                "created_at": now,
            })
            incident["warning_id"] = warning_id

            reservations = get_reservation_service()
            offender_reservations = await reservations.get_active_reservations([
                ("user_id", "==", offender),
                ("reservation_date", "==", incident["reservation_date"]),
                ("spot_id", "==", incident["original_spot_id"]),
            ])
            for reservation in offender_reservations:
                await reservations._cancel(
                    reservation, admin_id, CancellationTrigger.ADMIN_INCIDENT_CONFIRMATION,
                    OFFENDER_WARNING_REASON, process_waitlist=False
                )

            await notifications.notify(
                offender,
                NotificationType.WARNING_RECEIVED,
                "Has recibido una amonestación",
                OFFENDER_WARNING_REASON,
                data={"warning_id": warning_id, "incident_id": incident_id},
                priority=NotificationPriority.HIGH,
            )

        await notifications.notify(
            incident["reporter_id"],
            NotificationType.INCIDENT_CONFIRMED,
            "Incidencia confirmada",
            "Un administrador ha confirmado tu incidencia.",
            data={"incident_id": incident_id},
            send_email=False,
        )
        logger.info(f"Incident {incident_id} confirmed by {admin_id} (offender={offender})")
        return incident

    async def dismiss(self, incident_id: str, admin_id: str, reason: str) -> Dict[str, Any]:
        incident = await self._get_incident(incident_id)
        updates = {
            "status": IncidentStatus.DISMISSED.value,
            "dismissed_by": admin_id,
            "dismissed_at": utcnow(),
            "admin_notes": reason,
        }
        await self.db.update_document(FirebaseDB.COLLECTION_INCIDENTS, incident_id, updates)
        incident.update(updates)
        logger.info(f"Incident {incident_id} dismissed by {admin_id}")
        return incident

    async def add_notes(self, incident_id: str, notes: str) -> Dict[str, Any]:
        incident = await self._get_incident(incident_id)
        await self.db.update_document(FirebaseDB.COLLECTION_INCIDENTS, incident_id, {"admin_notes": notes})
        incident["admin_notes"] = notes
        return incident

    # ==================== WARNINGS ====================

    async def get_user_warning_count(self, user_id: str) -> int:
        warnings = await self.db.query_documents(
            FirebaseDB.COLLECTION_WARNINGS, filters=[("user_id", "==", user_id)]
        )
        return len(warnings)

    async def list_user_warnings(self, user_id: str) -> List[Dict[str, Any]]:
        warnings = await self.db.query_documents(
            FirebaseDB.COLLECTION_WARNINGS,
            filters=[("user_id", "==", user_id)],
            order_by="created_at",
            descending=True
        )
        storage = get_storage_service()
        for warning in warnings:
            issuer = None
            if warning.get("issued_by"):
                issuer = await self.db.get_document(FirebaseDB.COLLECTION_PROFILES, warning["issued_by"])
            warning["issued_by_name"] = full_name(issuer) if issuer else "Sistema"

            warning["photo_url"] = None
            if warning.get("incident_id"):
                incident = await self.db.get_document(
                    FirebaseDB.COLLECTION_INCIDENTS, warning["incident_id"]
                )
                path = storage.path_from_url((incident or {}).get("photo_path"))
                warning["photo_url"] = storage.signed_url(path) if path else None
        return warnings

    async def mark_warnings_viewed(self, user_id: str) -> int:
        warnings = await self.db.query_documents(
            FirebaseDB.COLLECTION_WARNINGS,
            filters=[("user_id", "==", user_id), ("viewed_at", "==", None)]
        )
        now = utcnow()
        for warning in warnings:
            await self.db.update_document(FirebaseDB.COLLECTION_WARNINGS, warning["id"], {"viewed_at": now})
        return len(warnings)


# Singleton instance
_incident_service: Optional[IncidentService] = None


def get_incident_service() -> IncidentService:
    """Get singleton incident service instance."""
    global _incident_service
    if _incident_service is None:
        _incident_service = IncidentService()
    return _incident_service
