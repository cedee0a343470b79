"""
Reserveo - Check-in Service
Check-in / check-out of reservations, infraction detection,
automatic warnings and temporary blocks.
"""

from typing import Optional, Dict, Any, List, Tuple
from datetime import date, datetime, timedelta
import logging

from config import get_settings
from database.firebase_db import get_db, FirebaseDB
from models.notification import NotificationType, NotificationPriority
from models.reservation import (
    ReservationStatus,
    CancellationTrigger,
    InfractionType,
    BlockType,
    CheckinNotificationType,
)
from services.settings_service import get_settings_service
from services.notification_service import get_notification_service
from services.reservation_service import get_reservation_service
from utils.errors import CheckinError, CheckinErrorCode
from utils.helpers import utcnow, local_today, local_midnight, local_tz, as_utc

# Configure logging
logger = logging.getLogger(__name__)


class CheckinService:
    """
    Service class for check-in compliance.

    The check-in window opens at local midnight of the reservation day and
    lasts the group's window hours; the grace period follows it. A check-in
    after the grace period is accepted but recorded as late, with an infraction.
    """

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()

    async def get_window(self, group_id: str, reservation_date: date) -> Tuple[datetime, datetime, datetime]:
        """(window_start, window_end, grace_end) in UTC."""
        settings = await get_settings_service().get_checkin_settings()
        hours = await get_settings_service().get_effective_window_hours(group_id)
        start = local_midnight(reservation_date)
        end = start + timedelta(hours=hours)
        return start, end, end + timedelta(minutes=int(settings["grace_period_minutes"]))

    async def _group_enabled(self, group_id: str) -> bool:
        config = await get_settings_service().get_group_checkin_config(group_id)
        return bool(config["enabled"])

    async def get_checkin_for_reservation(self, reservation_id: str) -> Optional[Dict[str, Any]]:
        checkins = await self.db.query_documents(
            FirebaseDB.COLLECTION_CHECKINS,
            filters=[("reservation_id", "==", reservation_id)],
            limit=1
        )
        return checkins[0] if checkins else None

    async def _record_infraction(
        self,
        reservation: Dict[str, Any],
        infraction_type: InfractionType,
        details: Optional[Dict[str, Any]] = None
    ) -> str:
        infraction = {
            "user_id": reservation["user_id"],
            "reservation_id": reservation["id"],
            "spot_id": reservation["spot_id"],
            "group_id": reservation.get("group_id"),
            "reservation_date": reservation["reservation_date"],
            "infraction_type": infraction_type.value,
            "status": "pending",
            "warning_id": None,
            "details": details or {},
            "detected_at": utcnow(),
        }
        infraction_id = await self.db.create_document(FirebaseDB.COLLECTION_INFRACTIONS, infraction)
        await self.db.create_document(FirebaseDB.COLLECTION_CHECKIN_NOTIFICATIONS, {
            "user_id": reservation["user_id"],
            "reservation_id": reservation["id"],
            "notification_type": CheckinNotificationType.INFRACTION_NOTICE.value,
            "sent_at": utcnow(),
        })
        logger.info(
            f"{infraction_type.value} infraction for {reservation['user_id']} "
            f"(reservation {reservation['id']})"
        )
        return infraction_id

    # ==================== USER ACTIONS ====================

    async def perform_checkin(self, user_id: str, reservation_id: str) -> Dict[str, Any]:
        """
        Confirm arrival for today's reservation.

        Raises:
            CheckinError: With one of the CheckinErrorCode values
        """
        settings = await get_settings_service().get_checkin_settings()
        if not settings["system_enabled"]:
            raise CheckinError("El sistema de check-in está desactivado", CheckinErrorCode.SYSTEM_DISABLED)

        reservation = await self.db.get_document(FirebaseDB.COLLECTION_RESERVATIONS, reservation_id)
        if not reservation or reservation["user_id"] != user_id \
                or reservation["status"] != ReservationStatus.ACTIVE.value:
            raise CheckinError("No tienes una reserva activa", CheckinErrorCode.NO_ACTIVE_RESERVATION)

        if reservation["reservation_date"] != local_today().isoformat():
            raise CheckinError("Solo puedes hacer check-in el día de la reserva", CheckinErrorCode.INVALID_DATE)
        if not await self._group_enabled(reservation["group_id"]):
            raise CheckinError("El check-in no está activo en este grupo", CheckinErrorCode.GROUP_DISABLED)
        if await get_reservation_service().is_user_blocked(user_id):
            raise CheckinError("Tu cuenta está bloqueada", CheckinErrorCode.USER_BLOCKED)
        if await self.get_checkin_for_reservation(reservation_id):
            raise CheckinError("Ya has hecho check-in", CheckinErrorCode.ALREADY_CHECKED_IN)

        now = utcnow()
        _, _, grace_end = await self.get_window(
            reservation["group_id"], date.fromisoformat(reservation["reservation_date"])
        )
        was_late = now > grace_end

        checkin = {
            "reservation_id": reservation_id,
            "user_id": user_id,
            "spot_id": reservation["spot_id"],
            "group_id": reservation["group_id"],
            "reservation_date": reservation["reservation_date"],
            "checkin_at": now,
            "checkout_at": None,
            "was_late": was_late,
            "is_continuous": False,
            "checkout_infraction": False,
        }
        checkin_id = await self.db.create_document(FirebaseDB.COLLECTION_CHECKINS, checkin)

        if was_late:
            await self._record_infraction(reservation, InfractionType.CHECKIN, {"late_checkin": True})

        await get_notification_service().notify(
            user_id,
            NotificationType.CHECKIN_SUCCESS,
            "Check-in realizado",
            "Check-in registrado con retraso." if was_late else "Check-in registrado correctamente.",
            data={"reservation_id": reservation_id},
            send_email=False,
        )
        logger.info(f"Check-in {checkin_id} for reservation {reservation_id} (late={was_late})")
        return {
            "success": True,
            "checkin_id": checkin_id,
            "reservation_id": reservation_id,
            "checkin_at": now.isoformat(),
            "was_late": was_late,
            "message": "Check-in realizado con retraso" if was_late else "Check-in realizado",
        }

    async def perform_checkout(self, user_id: str, reservation_id: str) -> Dict[str, Any]:
        """Confirm departure; the spot becomes available again for the rest of the day."""
        checkin = await self.get_checkin_for_reservation(reservation_id)
        if not checkin or checkin["user_id"] != user_id or checkin.get("checkout_at"):
            raise CheckinError("No hay check-in pendiente de salida", CheckinErrorCode.NO_CHECKIN_FOUND)

        now = utcnow()
        await self.db.update_document(FirebaseDB.COLLECTION_CHECKINS, checkin["id"], {"checkout_at": now})
        await self.db.update_document(FirebaseDB.COLLECTION_RESERVATIONS, reservation_id, {
            "status": ReservationStatus.COMPLETED.value,
            "completed_at": now,
        })

        reservation_date = date.fromisoformat(checkin["reservation_date"])
        if reservation_date >= local_today():
            try:
                # Import here to avoid circular imports
                from services.waitlist_service import get_waitlist_service
                await get_waitlist_service().process_waitlist_for_spot(checkin["spot_id"], reservation_date)
            except Exception as e:
                logger.error(f"Waitlist processing after checkout failed: {e}")

        logger.info(f"Checkout for reservation {reservation_id}")
        return {
            "success": True,
            "checkin_id": checkin["id"],
            "reservation_id": reservation_id,
            "checkout_at": now.isoformat(),
            "message": "Check-out realizado",
        }

    # ==================== JOBS ====================

    async def detect_checkin_infractions(self) -> int:
        """
        Active reservations whose grace period ended without a check-in:
        record an infraction, cancel the reservation and free the spot.
        """
        settings = await get_settings_service().get_checkin_settings()
        if not settings["system_enabled"]:
            return 0

        now = utcnow()
        reservations = await self.db.query_documents(
            FirebaseDB.COLLECTION_RESERVATIONS,
            filters=[
                ("status", "==", ReservationStatus.ACTIVE.value),
                ("reservation_date", "<=", local_today().isoformat()),
            ]
        )
        service = get_reservation_service()
        detected = 0
        for reservation in reservations:
            if not await self._group_enabled(reservation["group_id"]):
                continue
            _, _, grace_end = await self.get_window(
                reservation["group_id"], date.fromisoformat(reservation["reservation_date"])
            )
            if now <= grace_end or await self.get_checkin_for_reservation(reservation["id"]):
                continue

            await self._record_infraction(reservation, InfractionType.CHECKIN, {"no_show": True})
            await service._cancel(
                reservation, None, CancellationTrigger.CHECKIN_NO_SHOW,
                "No se realizó check-in a tiempo"
            )
            detected += 1

        if detected:
            logger.info(f"Detected {detected} check-in infraction(s)")
        return detected

    async def detect_checkout_infractions(self) -> int:
        """
        Past check-ins without check-out. When the user holds the same spot the
        next day the stay is carried over instead of counted as an infraction.
        """
        settings = await get_settings_service().get_checkin_settings()
        if not settings["system_enabled"]:
            return 0

        today = local_today().isoformat()
        checkins = await self.db.query_documents(
            FirebaseDB.COLLECTION_CHECKINS,
            filters=[("checkout_at", "==", None), ("reservation_date", "<", today)]
        )
        detected = 0
        for checkin in checkins:
            if checkin.get("checkout_infraction"):
                continue

            next_day = (date.fromisoformat(checkin["reservation_date"]) + timedelta(days=1)).isoformat()
            following = await self.db.query_documents(
                FirebaseDB.COLLECTION_RESERVATIONS,
                filters=[
                    ("user_id", "==", checkin["user_id"]),
                    ("spot_id", "==", checkin["spot_id"]),
                    ("reservation_date", "==", next_day),
                    ("status", "==", ReservationStatus.ACTIVE.value),
                ],
                limit=1
            )
            boundary = local_midnight(date.fromisoformat(next_day))

            await self.db.update_document(FirebaseDB.COLLECTION_RESERVATIONS, checkin["reservation_id"], {
                "status": ReservationStatus.COMPLETED.value,
            })

            if following and not await self.get_checkin_for_reservation(following[0]["id"]):
                await self.db.update_document(FirebaseDB.COLLECTION_CHECKINS, checkin["id"], {
                    "checkout_at": boundary,
                    "is_continuous": True,
                })
                nxt = following[0]
                await self.db.create_document(FirebaseDB.COLLECTION_CHECKINS, {
                    "reservation_id": nxt["id"],
                    "user_id": nxt["user_id"],
                    "spot_id": nxt["spot_id"],
                    "group_id": nxt["group_id"],
                    "reservation_date": nxt["reservation_date"],
                    "checkin_at": boundary,
                    "checkout_at": None,
                    "was_late": False,
                    "is_continuous": True,
                    "continued_from": checkin["id"],
                    "checkout_infraction": False,
                })
                logger.info(f"Check-in {checkin['id']} carried over to reservation {nxt['id']}")
                continue

            reservation = await self.db.get_document(
                FirebaseDB.COLLECTION_RESERVATIONS, checkin["reservation_id"]
            ) or {**checkin, "id": checkin["reservation_id"]}
            await self._record_infraction(reservation, InfractionType.CHECKOUT, {"checkin_id": checkin["id"]})
            await self.db.update_document(FirebaseDB.COLLECTION_CHECKINS, checkin["id"], {
                "checkout_infraction": True,
            })
            detected += 1

        if detected:
            logger.info(f"Detected {detected} checkout infraction(s)")
        return detected

    async def generate_automatic_warnings(self) -> int:
        """
        Users whose pending infractions of one type reach the threshold get a
        warning and a temporary block.
        """
        settings = await get_settings_service().get_checkin_settings()
        if not settings["system_enabled"]:
            return 0

        thresholds = {
            InfractionType.CHECKIN.value: int(settings["checkin_infraction_threshold"]),
            InfractionType.CHECKOUT.value: int(settings["checkout_infraction_threshold"]),
        }
        block_types = {
            InfractionType.CHECKIN.value: BlockType.AUTOMATIC_CHECKIN,
            InfractionType.CHECKOUT.value: BlockType.AUTOMATIC_CHECKOUT,
        }

        pending = await self.db.query_documents(
            FirebaseDB.COLLECTION_INFRACTIONS,
            filters=[("status", "==", "pending")]
        )
        grouped: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}
        for infraction in pending:
            grouped.setdefault((infraction["user_id"], infraction["infraction_type"]), []).append(infraction)

        notifications = get_notification_service()
        generated = 0
        for (user_id, infraction_type), infractions in grouped.items():
            if len(infractions) < thresholds[infraction_type]:
                continue

            now = utcnow()
            label = "check-in" if infraction_type == InfractionType.CHECKIN.value else "check-out"
            warning_id = await self.db.create_document(FirebaseDB.COLLECTION_WARNINGS, {
                "user_id": user_id,
                "issued_by": None,
                "reason": f"Acumulación de {len(infractions)} infracciones de {label}",
                "notes": None,
                "incident_id": None,
                "auto_generated": True,
                "infraction_type": infraction_type,
                "infraction_count": len(infractions),
                "viewed_at": None,
                "created_at": now,
            })
            for infraction in infractions:
                await self.db.update_document(FirebaseDB.COLLECTION_INFRACTIONS, infraction["id"], {
                    "status": "warned",
                    "warning_id": warning_id,
                })

            days = int(settings["temporary_block_days"])
            blocked_until = now + timedelta(days=days)
            await self.db.create_document(FirebaseDB.COLLECTION_USER_BLOCKS, {
                "user_id": user_id,
                "block_type": block_types[infraction_type].value,
                "reason": f"Bloqueo automático por infracciones de {label}",
                "warning_id": warning_id,
                "blocked_at": now,
                "blocked_until": blocked_until,
                "is_active": True,
            })

            await notifications.notify(
                user_id,
                NotificationType.WARNING_RECEIVED,
                "Has recibido una amonestación",
                f"Acumulas {len(infractions)} infracciones de {label}.",
                data={"warning_id": warning_id},
                priority=NotificationPriority.HIGH,
            )
            await notifications.notify(
                user_id,
                NotificationType.USER_BLOCKED,
                "Cuenta bloqueada temporalmente",
                f"No podrás reservar durante {days} días.",
                data={"blocked_until": blocked_until.isoformat()},
                priority=NotificationPriority.URGENT,
            )
            generated += 1
            logger.warning(f"Automatic warning {warning_id} and {days}-day block for {user_id}")

        return generated

    async def expire_user_blocks(self) -> int:
        blocks = await self.db.query_documents(
            FirebaseDB.COLLECTION_USER_BLOCKS,
            filters=[("is_active", "==", True), ("blocked_until", "<=", utcnow())]
        )
        for block in blocks:
            await self.db.update_document(FirebaseDB.COLLECTION_USER_BLOCKS, block["id"], {
                "is_active": False,
                "expired_at": utcnow(),
            })
            await get_notification_service().notify(
                block["user_id"],
                NotificationType.BLOCK_EXPIRED,
                "Bloqueo finalizado",
                "Tu bloqueo temporal ha terminado. Ya puedes volver a reservar.",
                data={"block_id": block["id"]},
            )
        if blocks:
            logger.info(f"Expired {len(blocks)} user block(s)")
        return len(blocks)

    async def send_checkin_reminders(self) -> int:
        """Remind users whose check-in window closes soon, once per reservation."""
        settings = await get_settings_service().get_checkin_settings()
        if not settings["system_enabled"] or not settings["send_checkin_reminders"]:
            return 0

        lead = timedelta(minutes=get_settings().checkin_reminder_lead_minutes)
        now = utcnow()
        reservations = await self.db.query_documents(
            FirebaseDB.COLLECTION_RESERVATIONS,
            filters=[
                ("status", "==", ReservationStatus.ACTIVE.value),
                ("reservation_date", "==", local_today().isoformat()),
            ]
        )
        sent = 0
        for reservation in reservations:
            if not await self._group_enabled(reservation["group_id"]):
                continue
            _, window_end, grace_end = await self.get_window(
                reservation["group_id"], date.fromisoformat(reservation["reservation_date"])
            )
            if not window_end - lead <= now < grace_end:
                continue
            if await self.get_checkin_for_reservation(reservation["id"]):
                continue

            already = await self.db.query_documents(
                FirebaseDB.COLLECTION_CHECKIN_NOTIFICATIONS,
                filters=[
                    ("reservation_id", "==", reservation["id"]),
                    ("notification_type", "==", CheckinNotificationType.CHECKIN_REMINDER.value),
                ],
                limit=1
            )
            if already:
                continue

            profile = await self.db.get_document(FirebaseDB.COLLECTION_PROFILES, reservation["user_id"])
            if profile and profile.get("checkin_reminders") is False:
                continue

            await get_notification_service().notify(
                reservation["user_id"],
                NotificationType.CHECKIN_REMINDER,
                "Recuerda hacer check-in",
                f"Tu plazo de check-in termina a las "
                f"{window_end.astimezone(local_tz()).strftime('%H:%M')}.",
                data={"reservation_id": reservation["id"]},
                priority=NotificationPriority.HIGH,
            )
            await self.db.create_document(FirebaseDB.COLLECTION_CHECKIN_NOTIFICATIONS, {
                "user_id": reservation["user_id"],
                "reservation_id": reservation["id"],
                "notification_type": CheckinNotificationType.CHECKIN_REMINDER.value,
                "sent_at": now,
            })
            sent += 1
        return sent

    # ==================== QUERIES ====================

    async def is_user_blocked_by_checkin(self, user_id: str) -> bool:
        blocks = await self.get_active_blocks(user_id)
        return any(b["block_type"] != BlockType.MANUAL.value for b in blocks)

    async def get_active_blocks(self, user_id: str) -> List[Dict[str, Any]]:
        now = utcnow()
        blocks = await self.db.query_documents(
            FirebaseDB.COLLECTION_USER_BLOCKS,
            filters=[("user_id", "==", user_id), ("is_active", "==", True)]
        )
        return [b for b in blocks if as_utc(b.get("blocked_until")) and as_utc(b["blocked_until"]) > now]

    async def get_user_blocks(self, user_id: str) -> Dict[str, Any]:
        pending = await self.db.query_documents(
            FirebaseDB.COLLECTION_INFRACTIONS,
            filters=[("user_id", "==", user_id), ("status", "==", "pending")]
        )
        return {
            "blocks": await self.get_active_blocks(user_id),
            "pending_infractions": {
                InfractionType.CHECKIN.value: sum(
                    1 for i in pending if i["infraction_type"] == InfractionType.CHECKIN.value
                ),
                InfractionType.CHECKOUT.value: sum(
                    1 for i in pending if i["infraction_type"] == InfractionType.CHECKOUT.value
                ),
            },
        }


# Singleton instance
_checkin_service: Optional[CheckinService] = None


def get_checkin_service() -> CheckinService:
    """Get singleton check-in service instance."""
    global _checkin_service
    if _checkin_service is None:
        _checkin_service = CheckinService()
    return _checkin_service
