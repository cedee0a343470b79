"""
Reserveo - Reservation Service
Calendar booking: reservable range, spot validation, reservations,
cancellations and availability.
"""

from typing import Optional, Dict, Any, List, Set
from datetime import date, timedelta
import logging
import random

from database.firebase_db import get_db, FirebaseDB
from models.reservation import ReservationStatus, ReservationValidation, CancellationTrigger
from models.notification import NotificationType
from models.user import AppRole
from services.settings_service import get_settings_service
from services.license_plate_service import get_license_plate_service
from services.notification_service import get_notification_service
from services.websocket_service import get_websocket_manager
from utils.errors import BusinessRuleError, ConflictError, NotFoundError, PermissionDeniedError
from utils.helpers import utcnow, local_now, local_today, month_bounds, iter_dates

# Configure logging
logger = logging.getLogger(__name__)

GENERAL_GROUP_NAME = "General"

# Spot types open to every role
OPEN_SPOT_TYPES = {None, AppRole.GENERAL.value}

VALIDATION_MESSAGES = {
    "USER_NOT_FOUND": "Usuario no encontrado",
    "USER_DEACTIVATED": "Tu cuenta está desactivada",
    "USER_BLOCKED": "Tu cuenta está bloqueada y no puedes reservar",
    "NO_APPROVED_PLATE": "Necesitas una matrícula aprobada para reservar",
    "SPOT_NOT_FOUND": "Plaza no encontrada",
    "SPOT_INACTIVE": "La plaza no está disponible",
    "GROUP_INACTIVE": "El grupo de la plaza está desactivado",
    "NO_GROUP_ACCESS": "No tienes acceso a este grupo de plazas",
    "DATE_OUT_OF_RANGE": "La fecha está fuera del periodo de reserva",
    "DATE_BLOCKED": "La fecha está bloqueada",
    "SPOT_ROLE_RESTRICTED": "Esta plaza está reservada para otro tipo de usuario",
    "ACCESSIBLE_PERMIT_REQUIRED": "Esta plaza requiere permiso de movilidad reducida",
    "CHARGER_PERMIT_REQUIRED": "Esta plaza requiere permiso de vehículo eléctrico",
    "SPOT_ALREADY_RESERVED": "Esta plaza ya está reservada para esa fecha",
    "USER_ALREADY_HAS_RESERVATION": "Ya tienes una reserva para esa fecha",
    "COMPACT_SPOT_WARNING": "Plaza compacta: comprueba que tu vehículo cabe",
}


def _invalid(code: str) -> ReservationValidation:
    return ReservationValidation(
        is_valid=False, error_code=code, error_message=VALIDATION_MESSAGES[code]
    )


def spot_allowed_for_roles(spot: Dict[str, Any], roles: List[str]) -> bool:
    """Typed spots (director, visitor...) are restricted to that role; admins may use any."""
    spot_type = spot.get("spot_type")
    return spot_type in OPEN_SPOT_TYPES or spot_type in roles or AppRole.ADMIN.value in roles


class ReservationService:
    """
    Service class for reservation operations.
    Handles booking validation, creation, cancellation and availability.
    """

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()

    # ==================== LOOKUPS ====================

    async def get_spot(self, spot_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.get_document(FirebaseDB.COLLECTION_SPOTS, spot_id)

    async def get_group(self, group_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.get_document(FirebaseDB.COLLECTION_GROUPS, group_id)

    async def get_reservation(self, reservation_id: str) -> Dict[str, Any]:
        reservation = await self.db.get_document(
            FirebaseDB.COLLECTION_RESERVATIONS, reservation_id
        )
        if not reservation:
            raise NotFoundError("Reserva no encontrada")
        return reservation

    async def get_user_groups(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Active groups the user may book: assigned groups plus the General group.
        Incident reserve groups are never bookable directly.
        """
        assignments = await self.db.query_documents(
            FirebaseDB.COLLECTION_ASSIGNMENTS,
            filters=[("user_id", "==", user_id)]
        )
        groups: Dict[str, Dict[str, Any]] = {}
        for assignment in assignments:
            group = await self.get_group(assignment["group_id"])
            if group and group.get("is_active") and not group.get("is_incident_reserve"):
                groups[group["id"]] = group

        general = await self.db.query_documents(
            FirebaseDB.COLLECTION_GROUPS,
            filters=[("name", "==", GENERAL_GROUP_NAME), ("is_active", "==", True)],
            limit=1
        )
        for group in general:
            groups.setdefault(group["id"], group)

        return sorted(groups.values(), key=lambda g: g.get("name", ""))

    async def get_user_group_ids(self, user_id: str) -> List[str]:
        return [g["id"] for g in await self.get_user_groups(user_id)]

    async def get_reservable_date_range(self) -> Dict[str, date]:
        """
        Today through today + advance_reservation_days. The last day only
        unlocks at daily_refresh_hour (local time).
        """
        settings = await get_settings_service().get_reservation_settings()
        now = local_now()
        today = now.date()
        max_date = today + timedelta(days=int(settings["advance_reservation_days"]))
        if now.hour < int(settings["daily_refresh_hour"]):
            max_date -= timedelta(days=1)
        return {"min_date": today, "max_date": max(max_date, today)}

    async def get_blocked_dates(
        self,
        start: date,
        end: date
    ) -> List[Dict[str, Any]]:
        return await self.db.query_documents(
            FirebaseDB.COLLECTION_BLOCKED_DATES,
            filters=[
                ("blocked_date", ">=", start.isoformat()),
                ("blocked_date", "<=", end.isoformat()),
            ]
        )

    async def is_date_blocked(self, day: date, group_id: Optional[str] = None) -> bool:
        """Blocked globally, or for the given group."""
        for blocked in await self.get_blocked_dates(day, day):
            if blocked.get("group_id") is None or blocked.get("group_id") == group_id:
                return True
        return False

    async def is_user_blocked(self, user_id: str, profile: Optional[Dict[str, Any]] = None) -> bool:
        """Blocked by an administrator or by an active automatic check-in block."""
        profile = profile or await self.db.get_document(FirebaseDB.COLLECTION_PROFILES, user_id)
        if profile and profile.get("is_blocked"):
            return True

        # Import here to avoid circular imports
        from services.checkin_service import get_checkin_service
        return await get_checkin_service().is_user_blocked_by_checkin(user_id)

    async def get_active_reservations(
        self,
        filters: List[tuple]
    ) -> List[Dict[str, Any]]:
        return await self.db.query_documents(
            FirebaseDB.COLLECTION_RESERVATIONS,
            filters=[*filters, ("status", "==", ReservationStatus.ACTIVE.value)]
        )

    # ==================== VALIDATION ====================

    async def validate_spot_reservation(
        self,
        user_id: str,
        spot_id: str,
        reservation_date: date,
        ignore_reservation_id: Optional[str] = None
    ) -> ReservationValidation:
        """
        Check every booking rule for a user, spot and day.
        Rules are evaluated in a fixed order and the first failure is returned.
        A compact spot is valid but carries COMPACT_SPOT_WARNING.
        """
        profile = await self.db.get_document(FirebaseDB.COLLECTION_PROFILES, user_id)
        if not profile:
            return _invalid("USER_NOT_FOUND")
        if profile.get("is_deactivated"):
            return _invalid("USER_DEACTIVATED")
        if await self.is_user_blocked(user_id, profile):
            return _invalid("USER_BLOCKED")

        plates = get_license_plate_service()
        if not await plates.has_approved_plate(user_id):
            return _invalid("NO_APPROVED_PLATE")

        spot = await self.get_spot(spot_id)
        if not spot:
            return _invalid("SPOT_NOT_FOUND")
        if not spot.get("is_active", True):
            return _invalid("SPOT_INACTIVE")

        group = await self.get_group(spot["group_id"])
        if not group or not group.get("is_active"):
            return _invalid("GROUP_INACTIVE")
        if spot["group_id"] not in await self.get_user_group_ids(user_id):
            return _invalid("NO_GROUP_ACCESS")

        date_range = await self.get_reservable_date_range()
        if not date_range["min_date"] <= reservation_date <= date_range["max_date"]:
            return _invalid("DATE_OUT_OF_RANGE")
        if await self.is_date_blocked(reservation_date, spot["group_id"]):
            return _invalid("DATE_BLOCKED")

        roles = profile.get("roles") or [AppRole.GENERAL.value]
        if not spot_allowed_for_roles(spot, roles):
            return _invalid("SPOT_ROLE_RESTRICTED")

        if spot.get("is_accessible") and not await plates.has_valid_disability_permit(user_id):
            return _invalid("ACCESSIBLE_PERMIT_REQUIRED")
        if spot.get("has_charger") and not await plates.has_valid_electric_permit(user_id):
            return _invalid("CHARGER_PERMIT_REQUIRED")

        day = reservation_date.isoformat()
        taken = await self.get_active_reservations(
            [("spot_id", "==", spot_id), ("reservation_date", "==", day)]
        )
        if any(r["id"] != ignore_reservation_id for r in taken):
            return _invalid("SPOT_ALREADY_RESERVED")

        own = await self.get_active_reservations(
            [("user_id", "==", user_id), ("reservation_date", "==", day)]
        )
        if any(r["id"] != ignore_reservation_id for r in own):
            return _invalid("USER_ALREADY_HAS_RESERVATION")

        if spot.get("is_compact"):
            return ReservationValidation(
                is_valid=True,
                error_code="COMPACT_SPOT_WARNING",
                error_message=VALIDATION_MESSAGES["COMPACT_SPOT_WARNING"],
            )
        return ReservationValidation(is_valid=True)

    # ==================== BOOKING ====================

    async def create_reservation(
        self,
        user_id: str,
        spot_id: str,
        reservation_date: date,
        source: str = "calendar",
        notify: bool = True
    ) -> Dict[str, Any]:
        """
        Validate and book a spot for a day.

        Raises:
            BusinessRuleError: A booking rule failed
            ConflictError: Spot or user already booked for that day
        """
        validation = await self.validate_spot_reservation(user_id, spot_id, reservation_date)
        if not validation.is_valid:
            logger.warning(
                f"Reservation refused for {user_id} on {spot_id}/{reservation_date}: "
                f"{validation.error_code}"
            )
            error = ConflictError if validation.error_code in (
                "SPOT_ALREADY_RESERVED", "USER_ALREADY_HAS_RESERVATION"
            ) else BusinessRuleError
            raise error(validation.error_message, code=validation.error_code)

        spot = await self.get_spot(spot_id)
        reservation = {
            "user_id": user_id,
            "spot_id": spot_id,
            "group_id": spot["group_id"],
            "spot_number": spot.get("spot_number"),
            "reservation_date": reservation_date.isoformat(),
            "status": ReservationStatus.ACTIVE.value,
            "source": source,
            "cancelled_at": None,
        }
        reservation["id"] = await self.db.create_reservation_transaction(reservation)

        await self._broadcast("reservation_created", reservation)
        if notify:
            await get_notification_service().notify(
                user_id,
                NotificationType.RESERVATION_CONFIRMED,
                "Reserva confirmada",
                f"Plaza {spot.get('spot_number')} reservada para el {reservation_date.isoformat()}",
                data={"reservation_id": reservation["id"], "spot_id": spot_id},
                send_email=False,
            )

        logger.info(f"Reservation {reservation['id']}: {user_id} -> {spot_id} on {reservation_date}")
        if validation.error_code:
            reservation["warning"] = validation.error_message
        return reservation

    async def change_reservation_spot(
        self,
        user_id: str,
        reservation_id: str,
        new_spot_id: str
    ) -> Dict[str, Any]:
        """Move an active reservation to another spot on the same day."""
        reservation = await self.get_reservation(reservation_id)
        if reservation["user_id"] != user_id:
            raise PermissionDeniedError("Esta reserva no te pertenece")
        if reservation["status"] != ReservationStatus.ACTIVE.value:
            raise BusinessRuleError("Solo se pueden modificar reservas activas")
        if reservation["spot_id"] == new_spot_id:
            return reservation

        day = date.fromisoformat(reservation["reservation_date"])
        validation = await self.validate_spot_reservation(
            user_id, new_spot_id, day, ignore_reservation_id=reservation_id
        )
        if not validation.is_valid:
            raise BusinessRuleError(validation.error_message, code=validation.error_code)

        old_spot_id = reservation["spot_id"]
        spot = await self.get_spot(new_spot_id)
        updates = {
            "spot_id": new_spot_id,
            "group_id": spot["group_id"],
            "spot_number": spot.get("spot_number"),
        }
        await self.db.update_document(FirebaseDB.COLLECTION_RESERVATIONS, reservation_id, updates)
        reservation.update(updates)

        await self._broadcast("reservation_updated", reservation)
        await self._offer_to_waitlist(old_spot_id, day)
        logger.info(f"Reservation {reservation_id} moved {old_spot_id} -> {new_spot_id}")
        return reservation

    async def cancel_reservation(
        self,
        reservation_id: str,
        cancelled_by: str,
        is_admin: bool = False,
        trigger: CancellationTrigger = CancellationTrigger.USER,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """Cancel a reservation by its owner or an administrator."""
        reservation = await self.get_reservation(reservation_id)
        if reservation["user_id"] != cancelled_by and not is_admin:
            raise PermissionDeniedError("Esta reserva no te pertenece")
        if reservation["status"] != ReservationStatus.ACTIVE.value:
            raise BusinessRuleError("La reserva no está activa", code="RESERVATION_NOT_ACTIVE")

        if is_admin and trigger == CancellationTrigger.USER and reservation["user_id"] != cancelled_by:
            trigger = CancellationTrigger.ADMIN
        return await self._cancel(reservation, cancelled_by, trigger, reason)

    async def _cancel(
        self,
        reservation: Dict[str, Any],
        cancelled_by: Optional[str],
        trigger: CancellationTrigger,
        reason: Optional[str] = None,
        process_waitlist: bool = True
    ) -> Dict[str, Any]:
        now = utcnow()
        updates = {
            "status": ReservationStatus.CANCELLED.value,
            "cancelled_at": now,
            "cancelled_by": cancelled_by,
            "cancellation_reason": reason,
        }
        await self.db.update_document(
            FirebaseDB.COLLECTION_RESERVATIONS, reservation["id"], updates
        )
        reservation.update(updates)

        await self.db.create_document(FirebaseDB.COLLECTION_CANCELLATION_LOG, {
            "reservation_id": reservation["id"],
            "user_id": reservation["user_id"],
            "spot_id": reservation["spot_id"],
            "reservation_date": reservation["reservation_date"],
            "cancelled_by": cancelled_by,
            "triggered_by": trigger.value,
            "reason": reason,
            "cancelled_at": now,
        })

        await self._broadcast("reservation_cancelled", reservation)

        if cancelled_by != reservation["user_id"]:
            await get_notification_service().notify(
                reservation["user_id"],
                NotificationType.RESERVATION_CANCELLED,
                "Reserva cancelada",
                f"Tu reserva del {reservation['reservation_date']} "
                f"(plaza {reservation.get('spot_number') or reservation['spot_id']}) ha sido cancelada."
                + (f" Motivo: {reason}" if reason else ""),
                data={"reservation_id": reservation["id"], "trigger": trigger.value},
            )

        if process_waitlist:
            await self._offer_to_waitlist(
                reservation["spot_id"], date.fromisoformat(reservation["reservation_date"])
            )

        logger.info(f"Reservation {reservation['id']} cancelled ({trigger.value})")
        return reservation

    async def _offer_to_waitlist(self, spot_id: str, day: date):
        """Offer a freed spot to the waitlist; failures are logged only."""
        if day < local_today():
            return
        try:
            # Import here to avoid circular imports
            from services.waitlist_service import get_waitlist_service
            await get_waitlist_service().process_waitlist_for_spot(spot_id, day)
        except Exception as e:
            logger.error(f"Waitlist processing failed for {spot_id}/{day}: {e}")

    # ==================== BULK CANCELLATIONS ====================

    async def _cancel_many(
        self,
        reservations: List[Dict[str, Any]],
        cancelled_by: Optional[str],
        trigger: CancellationTrigger,
        reason: Optional[str] = None,
        process_waitlist: bool = True
    ) -> int:
        for reservation in reservations:
            await self._cancel(reservation, cancelled_by, trigger, reason, process_waitlist)
        return len(reservations)

    async def cancel_user_future_reservations(
        self,
        user_id: str,
        cancelled_by: Optional[str],
        trigger: CancellationTrigger,
        reason: Optional[str] = None
    ) -> int:
        """Cancel every reservation of a user from today on."""
        reservations = await self.get_active_reservations([
            ("user_id", "==", user_id),
            ("reservation_date", ">=", local_today().isoformat()),
        ])
        return await self._cancel_many(reservations, cancelled_by, trigger, reason)

    async def cancel_user_reservations_in_group(
        self,
        user_id: str,
        group_id: str,
        cancelled_by: Optional[str]
    ) -> int:
        reservations = await self.get_active_reservations([
            ("user_id", "==", user_id),
            ("group_id", "==", group_id),
            ("reservation_date", ">=", local_today().isoformat()),
        ])
        return await self._cancel_many(
            reservations, cancelled_by, CancellationTrigger.GROUP_ACCESS_REMOVED,
            "Acceso al grupo retirado"
        )

    async def cancel_reservations_for_blocked_date(
        self,
        blocked_date: date,
        cancelled_by: Optional[str],
        group_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> int:
        """Cancel reservations on a blocked day (all groups, or one)."""
        filters = [("reservation_date", "==", blocked_date.isoformat())]
        if group_id:
            filters.append(("group_id", "==", group_id))
        reservations = await self.get_active_reservations(filters)
        return await self._cancel_many(
            reservations, cancelled_by, CancellationTrigger.BLOCKED_DATE,
            reason or "Fecha bloqueada", process_waitlist=False
        )

    async def cancel_group_future_reservations(
        self,
        group_id: str,
        cancelled_by: Optional[str],
        reason: Optional[str] = None
    ) -> int:
        reservations = await self.get_active_reservations([
            ("group_id", "==", group_id),
            ("reservation_date", ">=", local_today().isoformat()),
        ])
        return await self._cancel_many(
            reservations, cancelled_by, CancellationTrigger.GROUP_DEACTIVATED,
            reason or "Grupo desactivado", process_waitlist=False
        )

    # ==================== CALENDAR ====================

    async def get_month_reservations(
        self,
        user_id: str,
        year: int,
        month: int
    ) -> List[Dict[str, Any]]:
        first, last = month_bounds(year, month)
        reservations = await self.db.query_documents(
            FirebaseDB.COLLECTION_RESERVATIONS,
            filters=[
                ("user_id", "==", user_id),
                ("reservation_date", ">=", first.isoformat()),
                ("reservation_date", "<=", last.isoformat()),
            ]
        )
        return sorted(
            (r for r in reservations if r["status"] != ReservationStatus.CANCELLED.value),
            key=lambda r: r["reservation_date"]
        )

    async def get_reservation_details(
        self,
        reservation_id: str,
        user_id: str,
        is_admin: bool = False
    ) -> Dict[str, Any]:
        reservation = await self.get_reservation(reservation_id)
        if reservation["user_id"] != user_id and not is_admin:
            raise PermissionDeniedError("Esta reserva no te pertenece")

        reservation["spot"] = await self.get_spot(reservation["spot_id"])
        reservation["group"] = await self.get_group(reservation["group_id"])
        checkins = await self.db.query_documents(
            FirebaseDB.COLLECTION_CHECKINS,
            filters=[("reservation_id", "==", reservation_id)],
            limit=1
        )
        reservation["checkin"] = checkins[0] if checkins else None
        return reservation

    async def _active_spots(self, group_ids: List[str]) -> List[Dict[str, Any]]:
        spots: List[Dict[str, Any]] = []
        for group_id in group_ids:
            spots.extend(await self.db.query_documents(
                FirebaseDB.COLLECTION_SPOTS,
                filters=[("group_id", "==", group_id), ("is_active", "==", True)]
            ))
        return spots

    async def get_month_availability(
        self,
        user_id: str,
        year: int,
        month: int
    ) -> List[Dict[str, Any]]:
        """
        Free spots per day of a month across the user's groups.
        A day counts 0 when out of the reservable range, globally blocked,
        or blocked for every group of the user.
        """
        first, last = month_bounds(year, month)
        group_ids = await self.get_user_group_ids(user_id)
        spots = await self._active_spots(group_ids)
        spot_groups = {s["id"]: s["group_id"] for s in spots}
        date_range = await self.get_reservable_date_range()

        blocked = await self.get_blocked_dates(first, last)
        globally_blocked: Set[str] = {b["blocked_date"] for b in blocked if not b.get("group_id")}
        group_blocks: Dict[str, Set[str]] = {}
        for b in blocked:
            if b.get("group_id"):
                group_blocks.setdefault(b["blocked_date"], set()).add(b["group_id"])

        reservations = await self.get_active_reservations([
            ("reservation_date", ">=", first.isoformat()),
            ("reservation_date", "<=", last.isoformat()),
        ])
        taken: Dict[str, Set[str]] = {}
        for r in reservations:
            if r["spot_id"] in spot_groups:
                taken.setdefault(r["reservation_date"], set()).add(r["spot_id"])

        days = []
        for day in iter_dates(first, last):
            key = day.isoformat()
            in_range = date_range["min_date"] <= day <= date_range["max_date"]
            blocked_groups = group_blocks.get(key, set())
            is_blocked = key in globally_blocked or (
                bool(group_ids) and set(group_ids) <= blocked_groups
            )

            available = 0
            if in_range and not is_blocked:
                available = sum(
                    1 for spot_id, group_id in spot_groups.items()
                    if group_id not in blocked_groups and spot_id not in taken.get(key, set())
                )
            days.append({
                "date": key,
                "available": available,
                "is_blocked": is_blocked,
                "in_range": in_range,
            })
        return days

    async def get_available_spots(
        self,
        group_id: str,
        reservation_date: date
    ) -> List[Dict[str, Any]]:
        """
        Spots of a group with their state for a day. A spot freed by an early
        check-out is flagged ``is_early_checkout``.
        """
        spots = await self._active_spots([group_id])
        day = reservation_date.isoformat()
        reservations = await self.db.query_documents(
            FirebaseDB.COLLECTION_RESERVATIONS,
            filters=[("group_id", "==", group_id), ("reservation_date", "==", day)]
        )
        active = {r["spot_id"] for r in reservations if r["status"] == ReservationStatus.ACTIVE.value}
        completed = {
            r["spot_id"] for r in reservations if r["status"] == ReservationStatus.COMPLETED.value
        }

        result = []
        for spot in sorted(spots, key=lambda s: s.get("spot_number", "")):
            result.append({
                **spot,
                "is_available": spot["id"] not in active,
                "is_early_checkout": spot["id"] in completed and spot["id"] not in active,
            })
        return result

    async def get_groups_availability(
        self,
        user_id: str,
        reservation_date: date
    ) -> List[Dict[str, Any]]:
        """
        Occupancy of each user group on a day, with the user's last used
        spot (when free) and a random free spot for quick booking.
        """
        result = []
        history = await self.db.query_documents(
            FirebaseDB.COLLECTION_RESERVATIONS,
            filters=[("user_id", "==", user_id)],
            order_by="reservation_date",
            descending=True,
            limit=50
        )

        for group in await self.get_user_groups(user_id):
            blocked = await self.is_date_blocked(reservation_date, group["id"])
            spots = await self.get_available_spots(group["id"], reservation_date)
            free = [] if blocked else [s for s in spots if s["is_available"]]
            total = len(spots)
            occupied = sum(1 for s in spots if not s["is_available"])
            free_ids = {s["id"] for s in free}

            last_used = next(
                (h["spot_id"] for h in history
                 if h.get("group_id") == group["id"] and h["status"] != ReservationStatus.CANCELLED.value),
                None
            )

            result.append({
                "group_id": group["id"],
                "group_name": group.get("name"),
                "is_blocked": blocked,
                "total": total,
                "occupied": occupied,
                "available": len(free),
                "occupancy_rate": round(occupied / total * 100, 1) if total else 0.0,
                "last_used_spot_id": last_used if last_used in free_ids else None,
                "random_spot_id": random.choice(free)["id"] if free else None,
            })
        return result

    async def get_today_reservation(self, user_id: str) -> Optional[Dict[str, Any]]:
        today = local_today().isoformat()
        reservations = await self.db.query_documents(
            FirebaseDB.COLLECTION_RESERVATIONS,
            filters=[("user_id", "==", user_id), ("reservation_date", "==", today)]
        )
        current = [
            r for r in reservations
            if r["status"] in (ReservationStatus.ACTIVE.value, ReservationStatus.COMPLETED.value)
        ]
        if not current:
            return None
        current.sort(key=lambda r: r["status"] != ReservationStatus.ACTIVE.value)
        return await self.get_reservation_details(current[0]["id"], user_id)

    async def _broadcast(self, event: str, reservation: Dict[str, Any]):
        try:
            manager = get_websocket_manager()
            await manager.broadcast_event(event, {
                k: v for k, v in reservation.items() if k not in ("spot", "group", "checkin")
            })
        except Exception as e:
            logger.error(f"Broadcast failed for {event}: {e}")


# Singleton instance
_reservation_service: Optional[ReservationService] = None


def get_reservation_service() -> ReservationService:
    """Get singleton reservation service instance."""
    global _reservation_service
    if _reservation_service is None:
        _reservation_service = ReservationService()
    return _reservation_service
