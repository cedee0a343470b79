"""
Reserveo - Admin Service
Back-office management of users, parking groups, spots, group
assignments and blocked dates.
"""

from typing import Optional, Dict, Any, List
from datetime import date
import logging

from firebase_admin import auth

from database.firebase_db import get_db, FirebaseDB
from models.notification import NotificationType, NotificationPriority
from models.reservation import CancellationTrigger
from models.user import AppRole
from services.notification_service import get_notification_service
from services.reservation_service import get_reservation_service, GENERAL_GROUP_NAME
from services.storage_service import get_storage_service, FLOOR_PLANS_DIR
from services.websocket_service import get_websocket_manager
from utils.errors import BusinessRuleError, ConflictError, NotFoundError, PermissionDeniedError
from utils.helpers import utcnow, local_today

# Configure logging
logger = logging.getLogger(__name__)

FLOOR_PLAN_TYPES = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


class AdminService:
    """
    Service class for back-office operations.
    Cascading cancellations are delegated to the reservation service.
    """

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()

    async def _require(self, collection: str, doc_id: str, message: str) -> Dict[str, Any]:
        doc = await self.db.get_document(collection, doc_id)
        if not doc:
            raise NotFoundError(message)
        return doc

    # ==================== USERS ====================

    async def list_users(self) -> List[Dict[str, Any]]:
        """Profiles with their plates, group assignments and block state."""
        profiles = await self.db.query_documents(FirebaseDB.COLLECTION_PROFILES)
        plates = await self.db.query_documents(
            FirebaseDB.COLLECTION_PLATES, filters=[("is_deleted", "==", False)]
        )
        assignments = await self.db.query_documents(FirebaseDB.COLLECTION_ASSIGNMENTS)
        now = utcnow()
        blocks = await self.db.query_documents(
            FirebaseDB.COLLECTION_USER_BLOCKS,
            filters=[("is_active", "==", True), ("blocked_until", ">", now)]
        )

        users = []
        for profile in profiles:
            uid = profile["id"]
            users.append({
                **profile,
                "license_plates": [p for p in plates if p["user_id"] == uid],
                "group_ids": [a["group_id"] for a in assignments if a["user_id"] == uid],
                "active_blocks": [b for b in blocks if b["user_id"] == uid],
            })
        users.sort(key=lambda u: (u.get("last_name") or "", u.get("first_name") or ""))
        return users

    async def block_user(self, user_id: str, admin_id: str, reason: str) -> Dict[str, Any]:
        if user_id == admin_id:
            raise BusinessRuleError("No puedes bloquearte a ti mismo", code="SELF_ACTION")
        await self._require(FirebaseDB.COLLECTION_PROFILES, user_id, "Usuario no encontrado")

        await self.db.update_document(FirebaseDB.COLLECTION_PROFILES, user_id, {
            "is_blocked": True,
            "blocked_reason": reason,
            "blocked_at": utcnow(),
            "blocked_by": admin_id,
        })
        cancelled = await get_reservation_service().cancel_user_future_reservations(
            user_id, admin_id, CancellationTrigger.USER_BLOCKED, reason
        )
        await get_notification_service().notify(
            user_id,
            NotificationType.USER_BLOCKED,
            "Cuenta bloqueada",
            f"Un administrador ha bloqueado tu cuenta. Motivo: {reason}",
            priority=NotificationPriority.HIGH,
        )
        logger.info(f"User {user_id} blocked by {admin_id} ({cancelled} reservations cancelled)")
        return {"user_id": user_id, "is_blocked": True, "cancelled_reservations": cancelled}

    async def unblock_user(self, user_id: str, admin_id: str) -> Dict[str, Any]:
        await self._require(FirebaseDB.COLLECTION_PROFILES, user_id, "Usuario no encontrado")
        await self.db.update_document(FirebaseDB.COLLECTION_PROFILES, user_id, {
            "is_blocked": False,
            "blocked_reason": None,
            "blocked_at": None,
            "blocked_by": None,
        })
        logger.info(f"User {user_id} unblocked by {admin_id}")
        return {"user_id": user_id, "is_blocked": False}

    async def _close_user_waitlist(self, user_id: str) -> int:
        # Import here to avoid circular imports
        from services.waitlist_service import get_waitlist_service, OPEN_ENTRY_STATUSES

        waitlist = get_waitlist_service()
        entries = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_ENTRIES,
            filters=[("user_id", "==", user_id), ("status", "in", OPEN_ENTRY_STATUSES)]
        )
        for entry in entries:
            await waitlist.cancel_entry(user_id, entry["id"], is_admin=True)
        return len(entries)

    async def deactivate_user(self, user_id: str, admin_id: str) -> Dict[str, Any]:
        """Deactivate an account and release everything it holds."""
        if user_id == admin_id:
            raise BusinessRuleError("No puedes desactivar tu propia cuenta", code="SELF_ACTION")
        await self._require(FirebaseDB.COLLECTION_PROFILES, user_id, "Usuario no encontrado")

        await self.db.update_document(FirebaseDB.COLLECTION_PROFILES, user_id, {
            "is_deactivated": True,
            "deactivated_at": utcnow(),
            "deactivated_by": admin_id,
        })
        cancelled = await get_reservation_service().cancel_user_future_reservations(
            user_id, admin_id, CancellationTrigger.USER_DEACTIVATED, "Cuenta desactivada"
        )
        entries = await self._close_user_waitlist(user_id)
        logger.info(
            f"User {user_id} deactivated by {admin_id}: "
            f"{cancelled} reservations, {entries} waitlist entries"
        )
        return {
            "user_id": user_id,
            "is_deactivated": True,
            "cancelled_reservations": cancelled,
            "cancelled_waitlist_entries": entries,
        }

    async def reactivate_user(self, user_id: str, admin_id: str) -> Dict[str, Any]:
        await self._require(FirebaseDB.COLLECTION_PROFILES, user_id, "Usuario no encontrado")
        await self.db.update_document(FirebaseDB.COLLECTION_PROFILES, user_id, {
            "is_deactivated": False,
            "deactivated_at": None,
            "deactivated_by": None,
        })
        logger.info(f"User {user_id} reactivated by {admin_id}")
        return {"user_id": user_id, "is_deactivated": False}

    async def delete_user_permanently(
        self,
        user_id: str,
        admin_id: str,
        admin_email: Optional[str],
        password: str
    ) -> Dict[str, Any]:
        """
        Remove a user and the data attached to them.
        The administrator must confirm with their own password.
        """
        # Import here to avoid circular imports
        from security.firebase_auth import verify_admin_password

        if user_id == admin_id:
            raise BusinessRuleError("No puedes eliminar tu propia cuenta", code="SELF_ACTION")
        await self._require(FirebaseDB.COLLECTION_PROFILES, user_id, "Usuario no encontrado")
        if not await verify_admin_password(admin_email, password):
            raise PermissionDeniedError("Contraseña incorrecta", code="INVALID_PASSWORD")

        await get_reservation_service().cancel_user_future_reservations(
            user_id, admin_id, CancellationTrigger.USER_DEACTIVATED, "Cuenta eliminada"
        )
        await self._close_user_waitlist(user_id)

        removed = 0
        for collection in (
            FirebaseDB.COLLECTION_PLATES,
            FirebaseDB.COLLECTION_ASSIGNMENTS,
            FirebaseDB.COLLECTION_WAITLIST_ENTRIES,
            FirebaseDB.COLLECTION_NOTIFICATIONS,
        ):
            for doc in await self.db.query_documents(collection, filters=[("user_id", "==", user_id)]):
                await self.db.delete_document(collection, doc["id"])
                removed += 1
        await self.db.delete_document(FirebaseDB.COLLECTION_PROFILES, user_id)

        # Firestore data is already gone, an auth failure only leaves an orphan login
        auth_deleted = True
        try:
            auth.delete_user(user_id)
        except auth.UserNotFoundError:
            logger.warning(f"Auth user {user_id} already missing")
        except Exception as e:
            auth_deleted = False
            logger.error(f"Could not delete auth user {user_id}: {e}", exc_info=True)

        logger.info(f"User {user_id} permanently deleted by {admin_id} ({removed} related documents)")
        return {
            "user_id": user_id,
            "deleted": True,
            "auth_deleted": auth_deleted,
            "related_documents": removed,
        }

    async def set_roles(self, user_id: str, roles: List[AppRole], admin_id: str) -> Dict[str, Any]:
        values = sorted({role.value for role in roles})
        if user_id == admin_id and AppRole.ADMIN.value not in values:
            raise BusinessRuleError(
                "No puedes quitarte el rol de administrador", code="SELF_ACTION"
            )
        await self._require(FirebaseDB.COLLECTION_PROFILES, user_id, "Usuario no encontrado")
        await self.db.update_document(FirebaseDB.COLLECTION_PROFILES, user_id, {"roles": values})
        logger.info(f"Roles of {user_id} set to {values} by {admin_id}")
        return {"user_id": user_id, "roles": values}

    # ==================== GROUPS ====================

    async def list_groups(self) -> List[Dict[str, Any]]:
        groups = await self.db.query_documents(FirebaseDB.COLLECTION_GROUPS, order_by="name")
        spots = await self.db.query_documents(FirebaseDB.COLLECTION_SPOTS)
        for group in groups:
            group_spots = [s for s in spots if s.get("group_id") == group["id"]]
            group["spot_count"] = len(group_spots)
            group["active_spot_count"] = sum(1 for s in group_spots if s.get("is_active", True))
        return groups

    async def create_group(self, data: Dict[str, Any], admin_id: str) -> Dict[str, Any]:
        existing = await self.db.query_documents(
            FirebaseDB.COLLECTION_GROUPS, filters=[("name", "==", data["name"])], limit=1
        )
        if existing:
            raise ConflictError("Ya existe un grupo con ese nombre", code="GROUP_NAME_TAKEN")
        values = {
            **data,
            "scheduled_deactivation_date": None,
            "deactivation_reason": None,
            "created_by": admin_id,
        }
        group_id = await self.db.create_document(FirebaseDB.COLLECTION_GROUPS, values)
        logger.info(f"Parking group created: {data['name']} ({group_id})")
        return await self.db.get_document(FirebaseDB.COLLECTION_GROUPS, group_id)

    async def update_group(self, group_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        await self._require(FirebaseDB.COLLECTION_GROUPS, group_id, "Grupo no encontrado")
        values = {k: v for k, v in updates.items() if v is not None}
        if values:
            await self.db.update_document(FirebaseDB.COLLECTION_GROUPS, group_id, values)
        return await self.db.get_document(FirebaseDB.COLLECTION_GROUPS, group_id)

    async def toggle_group(self, group_id: str, admin_id: str) -> Dict[str, Any]:
        group = await self._require(FirebaseDB.COLLECTION_GROUPS, group_id, "Grupo no encontrado")
        if group.get("is_active", True):
            return await self.deactivate_group(group_id, admin_id)
        await self.db.update_document(FirebaseDB.COLLECTION_GROUPS, group_id, {
            "is_active": True,
            "deactivated_at": None,
            "deactivation_reason": None,
        })
        logger.info(f"Parking group {group_id} reactivated by {admin_id}")
        return await self.db.get_document(FirebaseDB.COLLECTION_GROUPS, group_id)

    async def deactivate_group(
        self,
        group_id: str,
        admin_id: Optional[str],
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """Deactivate a group and cancel its future reservations."""
        group = await self._require(FirebaseDB.COLLECTION_GROUPS, group_id, "Grupo no encontrado")
        if group.get("name") == GENERAL_GROUP_NAME:
            raise BusinessRuleError("El grupo General no se puede desactivar", code="GENERAL_GROUP")

        await self.db.update_document(FirebaseDB.COLLECTION_GROUPS, group_id, {
            "is_active": False,
            "deactivated_at": utcnow(),
            "deactivation_reason": reason,
            "scheduled_deactivation_date": None,
        })
        cancelled = await get_reservation_service().cancel_group_future_reservations(
            group_id, admin_id, reason
        )

        # Import here to avoid circular imports
        from services.waitlist_service import get_waitlist_service
        entries = await get_waitlist_service().close_group_entries(group_id, "group_deactivated")

        logger.info(
            f"Parking group {group_id} deactivated: {cancelled} reservations, "
            f"{entries} waitlist entries cancelled"
        )
        group = await self.db.get_document(FirebaseDB.COLLECTION_GROUPS, group_id)
        group["cancelled_reservations"] = cancelled
        return group

    async def schedule_group_deactivation(
        self,
        group_id: str,
        deactivation_date: date,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        await self._require(FirebaseDB.COLLECTION_GROUPS, group_id, "Grupo no encontrado")
        if deactivation_date <= local_today():
            raise BusinessRuleError(
                "La fecha de desactivación debe ser futura", code="INVALID_DATE"
            )
        await self.db.update_document(FirebaseDB.COLLECTION_GROUPS, group_id, {
            "scheduled_deactivation_date": deactivation_date.isoformat(),
            "deactivation_reason": reason,
        })
        logger.info(f"Parking group {group_id} scheduled for deactivation on {deactivation_date}")
        return await self.db.get_document(FirebaseDB.COLLECTION_GROUPS, group_id)

    async def cancel_scheduled_deactivation(self, group_id: str) -> Dict[str, Any]:
        await self._require(FirebaseDB.COLLECTION_GROUPS, group_id, "Grupo no encontrado")
        await self.db.update_document(FirebaseDB.COLLECTION_GROUPS, group_id, {
            "scheduled_deactivation_date": None,
            "deactivation_reason": None,
        })
        return await self.db.get_document(FirebaseDB.COLLECTION_GROUPS, group_id)

    async def apply_scheduled_deactivations(self) -> int:
        """Daily job: deactivate groups whose scheduled date has arrived."""
        groups = await self.db.query_documents(
            FirebaseDB.COLLECTION_GROUPS,
            filters=[
                ("is_active", "==", True),
                ("scheduled_deactivation_date", "<=", local_today().isoformat()),
            ]
        )
        for group in groups:
            await self.deactivate_group(group["id"], None, group.get("deactivation_reason"))
        return len(groups)

    async def upload_floor_plan(
        self,
        group_id: str,
        data: bytes,
        content_type: Optional[str]
    ) -> Dict[str, Any]:
        group = await self._require(FirebaseDB.COLLECTION_GROUPS, group_id, "Grupo no encontrado")
        ext = FLOOR_PLAN_TYPES.get((content_type or "").lower())
        if not ext:
            raise BusinessRuleError("Formato de plano no soportado", code="INVALID_FILE_TYPE")

        storage = get_storage_service()
        path = f"{FLOOR_PLANS_DIR}/{group_id}.{ext}"
        previous = storage.path_from_url(group.get("floor_plan_url"), FLOOR_PLANS_DIR)
        storage.upload(path, data, content_type)
        if previous and previous != path:
            storage.delete(previous)

        await self.db.update_document(FirebaseDB.COLLECTION_GROUPS, group_id, {"floor_plan_url": path})
        logger.info(f"Floor plan uploaded for group {group_id}")
        group = await self.db.get_document(FirebaseDB.COLLECTION_GROUPS, group_id)
        group["floor_plan_signed_url"] = storage.signed_url(path)
        return group

    # ==================== SPOTS ====================

    async def list_spots(self, group_id: Optional[str] = None) -> List[Dict[str, Any]]:
        filters = [("group_id", "==", group_id)] if group_id else None
        spots = await self.db.query_documents(FirebaseDB.COLLECTION_SPOTS, filters=filters)
        spots.sort(key=lambda s: s.get("spot_number", ""))
        return spots

    async def _check_spot_number(self, group_id: str, spot_number: str, spot_id: Optional[str] = None):
        existing = await self.db.query_documents(
            FirebaseDB.COLLECTION_SPOTS,
            filters=[("group_id", "==", group_id), ("spot_number", "==", spot_number)]
        )
        if any(s["id"] != spot_id for s in existing):
            raise ConflictError(
                f"La plaza {spot_number} ya existe en este grupo", code="SPOT_NUMBER_TAKEN"
            )

    async def create_spot(self, data: Dict[str, Any]) -> Dict[str, Any]:
        await self._require(FirebaseDB.COLLECTION_GROUPS, data["group_id"], "Grupo no encontrado")
        await self._check_spot_number(data["group_id"], data["spot_number"])
        spot_id = await self.db.create_document(FirebaseDB.COLLECTION_SPOTS, data)
        logger.info(f"Spot {data['spot_number']} created in group {data['group_id']}")
        return await self.db.get_document(FirebaseDB.COLLECTION_SPOTS, spot_id)

    async def update_spot(self, spot_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        spot = await self._require(FirebaseDB.COLLECTION_SPOTS, spot_id, "Plaza no encontrada")
        values = {k: v for k, v in updates.items() if v is not None}
        if "spot_number" in values:
            values["spot_number"] = values["spot_number"].strip().upper()
        if "group_id" in values:
            await self._require(FirebaseDB.COLLECTION_GROUPS, values["group_id"], "Grupo no encontrado")
        if "spot_number" in values or "group_id" in values:
            await self._check_spot_number(
                values.get("group_id", spot["group_id"]),
                values.get("spot_number", spot["spot_number"]),
                spot_id,
            )
        if values:
            await self.db.update_document(FirebaseDB.COLLECTION_SPOTS, spot_id, values)
        return await self.db.get_document(FirebaseDB.COLLECTION_SPOTS, spot_id)

    async def toggle_spot(self, spot_id: str, admin_id: str) -> Dict[str, Any]:
        """Flip a spot's active flag; deactivation cancels its future reservations."""
        spot = await self._require(FirebaseDB.COLLECTION_SPOTS, spot_id, "Plaza no encontrada")
        is_active = not spot.get("is_active", True)
        await self.db.update_document(FirebaseDB.COLLECTION_SPOTS, spot_id, {"is_active": is_active})

        cancelled = 0
        if not is_active:
            reservations_service = get_reservation_service()
            reservations = await reservations_service.get_active_reservations([
                ("spot_id", "==", spot_id),
                ("reservation_date", ">=", local_today().isoformat()),
            ])
            for reservation in reservations:
                await reservations_service._cancel(
                    reservation, admin_id, CancellationTrigger.ADMIN,
                    "Plaza desactivada", process_waitlist=False
                )
            cancelled = len(reservations)

        logger.info(f"Spot {spot_id} {'activated' if is_active else 'deactivated'} by {admin_id}")
        spot = await self.db.get_document(FirebaseDB.COLLECTION_SPOTS, spot_id)
        spot["cancelled_reservations"] = cancelled
        return spot

    async def update_positions(self, positions: List[Dict[str, Any]]) -> int:
        """Persist coordinates set in the floor-plan editor."""
        for position in positions:
            await self._require(FirebaseDB.COLLECTION_SPOTS, position["spot_id"], "Plaza no encontrada")
        for position in positions:
            await self.db.update_document(FirebaseDB.COLLECTION_SPOTS, position["spot_id"], {
                "position_x": position["position_x"],
                "position_y": position["position_y"],
            })
        return len(positions)

    # ==================== ASSIGNMENTS ====================

    async def list_assignments(
        self,
        group_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        filters = []
        if group_id:
            filters.append(("group_id", "==", group_id))
        if user_id:
            filters.append(("user_id", "==", user_id))
        return await self.db.query_documents(FirebaseDB.COLLECTION_ASSIGNMENTS, filters=filters or None)

    async def add_assignment(self, user_id: str, group_id: str, admin_id: str) -> Dict[str, Any]:
        await self._require(FirebaseDB.COLLECTION_PROFILES, user_id, "Usuario no encontrado")
        group = await self._require(FirebaseDB.COLLECTION_GROUPS, group_id, "Grupo no encontrado")
        if await self.list_assignments(group_id=group_id, user_id=user_id):
            raise ConflictError("El usuario ya tiene acceso a este grupo", code="ALREADY_ASSIGNED")

        assignment_id = await self.db.create_document(FirebaseDB.COLLECTION_ASSIGNMENTS, {
            "user_id": user_id,
            "group_id": group_id,
            "assigned_by": admin_id,
        })
        await get_notification_service().notify(
            user_id,
            NotificationType.GROUP_ACCESS_ADDED,
            "Nuevo acceso a plazas",
            f"Ahora tienes acceso al grupo {group['name']}.",
            data={"group_id": group_id},
            priority=NotificationPriority.LOW,
        )
        logger.info(f"User {user_id} assigned to group {group_id}")
        return await self.db.get_document(FirebaseDB.COLLECTION_ASSIGNMENTS, assignment_id)

    async def remove_assignment(self, user_id: str, group_id: str, admin_id: str) -> Dict[str, Any]:
        """Revoke group access and cancel the user's future reservations in the group."""
        assignments = await self.list_assignments(group_id=group_id, user_id=user_id)
        if not assignments:
            raise NotFoundError("El usuario no tiene acceso a este grupo")
        group = await self.db.get_document(FirebaseDB.COLLECTION_GROUPS, group_id) or {}

        for assignment in assignments:
            await self.db.delete_document(FirebaseDB.COLLECTION_ASSIGNMENTS, assignment["id"])
        cancelled = await get_reservation_service().cancel_user_reservations_in_group(
            user_id, group_id, admin_id
        )
        await get_notification_service().notify(
            user_id,
            NotificationType.GROUP_ACCESS_REMOVED,
            "Acceso a plazas retirado",
            f"Ya no tienes acceso al grupo {group.get('name', group_id)}."
            + (f" Se han cancelado {cancelled} reservas." if cancelled else ""),
            data={"group_id": group_id},
        )
        logger.info(f"User {user_id} removed from group {group_id} ({cancelled} cancelled)")
        return {"user_id": user_id, "group_id": group_id, "cancelled_reservations": cancelled}

    # ==================== BLOCKED DATES ====================

    async def list_blocked_dates(self, from_date: Optional[date] = None) -> List[Dict[str, Any]]:
        filters = [("blocked_date", ">=", from_date.isoformat())] if from_date else None
        return await self.db.query_documents(
            FirebaseDB.COLLECTION_BLOCKED_DATES, filters=filters, order_by="blocked_date"
        )

    async def block_date(
        self,
        blocked_date: date,
        admin_id: str,
        reason: Optional[str] = None,
        group_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Block a day for everyone or one group, cancelling its reservations."""
        if group_id:
            await self._require(FirebaseDB.COLLECTION_GROUPS, group_id, "Grupo no encontrado")
        existing = await self.db.query_documents(
            FirebaseDB.COLLECTION_BLOCKED_DATES,
            filters=[("blocked_date", "==", blocked_date.isoformat()), ("group_id", "==", group_id)]
        )
        if existing:
            raise ConflictError("La fecha ya está bloqueada", code="DATE_ALREADY_BLOCKED")

        block_id = await self.db.create_document(FirebaseDB.COLLECTION_BLOCKED_DATES, {
            "blocked_date": blocked_date.isoformat(),
            "group_id": group_id,
            "reason": reason,
            "created_by": admin_id,
        })
        cancelled = await get_reservation_service().cancel_reservations_for_blocked_date(
            blocked_date, admin_id, group_id, reason
        )
        await get_websocket_manager().broadcast_event(
            "blocked_date_added", {"blocked_date": blocked_date.isoformat(), "group_id": group_id}
        )
        logger.info(f"Date {blocked_date} blocked (group={group_id}); {cancelled} reservations cancelled")
        blocked = await self.db.get_document(FirebaseDB.COLLECTION_BLOCKED_DATES, block_id)
        blocked["cancelled_reservations"] = cancelled
        return blocked

    async def unblock_date(self, block_id: str) -> bool:
        await self._require(FirebaseDB.COLLECTION_BLOCKED_DATES, block_id, "Fecha bloqueada no encontrada")
        await self.db.delete_document(FirebaseDB.COLLECTION_BLOCKED_DATES, block_id)
        logger.info(f"Blocked date {block_id} removed")
        return True


# Singleton instance
_admin_service: Optional[AdminService] = None


def get_admin_service() -> AdminService:
    """Get singleton admin service instance."""
    global _admin_service
    if _admin_service is None:
        _admin_service = AdminService()
    return _admin_service
