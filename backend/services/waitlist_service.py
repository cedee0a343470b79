"""
Reserveo - Waitlist Service
Queues per group and day, time-limited offers of freed spots,
penalties for unanswered or rejected offers, and the admin views.
"""

from typing import Optional, Dict, Any, List
from datetime import date, timedelta
import logging

from database.firebase_db import get_db, FirebaseDB
from models.notification import NotificationType, NotificationPriority
from models.reservation import ReservationStatus
from models.user import role_priority
from models.waitlist import WaitlistEntryStatus, WaitlistOfferStatus, WaitlistLogAction
from services.settings_service import get_settings_service
from services.license_plate_service import get_license_plate_service
from services.notification_service import get_notification_service
from services.reservation_service import get_reservation_service
from services.websocket_service import get_websocket_manager
from utils.errors import (
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ReserveoError,
)
from utils.helpers import utcnow, local_today, as_utc

# Configure logging
logger = logging.getLogger(__name__)

OPEN_ENTRY_STATUSES = [WaitlistEntryStatus.ACTIVE.value, WaitlistEntryStatus.OFFER_PENDING.value]


class WaitlistService:
    """
    Service class for the waitlist.
    Every state change is recorded in waitlist_logs.
    """

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()

    # ==================== HELPERS ====================

    async def _log(
        self,
        action: WaitlistLogAction,
        user_id: Optional[str] = None,
        entry_id: Optional[str] = None,
        offer_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        await self.db.create_document(FirebaseDB.COLLECTION_WAITLIST_LOGS, {
            "action": action.value,
            "user_id": user_id,
            "entry_id": entry_id,
            "offer_id": offer_id,
            "details": details or {},
            "created_at": utcnow(),
        })

    async def _broadcast(self, event: str, payload: Dict[str, Any]):
        try:
            await get_websocket_manager().broadcast_event(event, payload)
        except Exception as e:
            logger.error(f"Broadcast failed for {event}: {e}")

    async def _get_entry(self, entry_id: str) -> Dict[str, Any]:
        entry = await self.db.get_document(FirebaseDB.COLLECTION_WAITLIST_ENTRIES, entry_id)
        if not entry:
            raise NotFoundError("Entrada de lista de espera no encontrada")
        return entry

    async def _get_offer(self, offer_id: str) -> Dict[str, Any]:
        offer = await self.db.get_document(FirebaseDB.COLLECTION_WAITLIST_OFFERS, offer_id)
        if not offer:
            raise NotFoundError("Oferta no encontrada")
        return offer

    @staticmethod
    def _queue_key(priority_by_role: bool):
        def key(entry: Dict[str, Any]):
            priority = entry.get("priority", 0) if priority_by_role else 0
            return (-priority, as_utc(entry["created_at"]))
        return key

    async def _queue(self, group_id: str, day: str, statuses: List[str]) -> List[Dict[str, Any]]:
        settings = await get_settings_service().get_waitlist_settings()
        entries = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_ENTRIES,
            filters=[
                ("group_id", "==", group_id),
                ("reservation_date", "==", day),
                ("status", "in", statuses),
            ]
        )
        return sorted(entries, key=self._queue_key(settings["priority_by_role"]))

    async def calculate_position(self, entry: Dict[str, Any]) -> int:
        """1-based position among the open entries of the same queue."""
        queue = await self._queue(entry["group_id"], entry["reservation_date"], OPEN_ENTRY_STATUSES)
        for index, other in enumerate(queue):
            if other["id"] == entry["id"]:
                return index + 1
        return 0

    # ==================== PENALTIES ====================

    async def check_penalty_status(self, user_id: str) -> Dict[str, Any]:
        """Current penalty state; an elapsed block is lifted and its counters reset."""
        penalty = await self.db.get_document(FirebaseDB.COLLECTION_WAITLIST_PENALTIES, user_id)
        if not penalty:
            return {
                "is_blocked": False,
                "blocked_until": None,
                "rejection_count": 0,
                "no_response_count": 0,
            }

        blocked_until = as_utc(penalty.get("blocked_until"))
        if penalty.get("is_blocked") and blocked_until and blocked_until <= utcnow():
            reset = {
                "is_blocked": False,
                "blocked_until": None,
                "rejection_count": 0,
                "no_response_count": 0,
            }
            await self.db.set_document(FirebaseDB.COLLECTION_WAITLIST_PENALTIES, user_id, reset)
            return reset

        return {
            "is_blocked": bool(penalty.get("is_blocked")),
            "blocked_until": blocked_until,
            "rejection_count": penalty.get("rejection_count", 0),
            "no_response_count": penalty.get("no_response_count", 0),
        }

    async def _register_strike(self, user_id: str, field: str):
        settings = await get_settings_service().get_waitlist_settings()
        if not settings["penalty_enabled"]:
            return

        status = await self.check_penalty_status(user_id)
        if status["is_blocked"]:
            return

        status[field] += 1
        values = {
            "user_id": user_id,
            "rejection_count": status["rejection_count"],
            "no_response_count": status["no_response_count"],
        }
        strikes = status["rejection_count"] + status["no_response_count"]
        if strikes >= settings["penalty_threshold"]:
            values["is_blocked"] = True
            values["blocked_until"] = utcnow() + timedelta(days=settings["penalty_duration_days"])
            await self._log(
                WaitlistLogAction.PENALTY_APPLIED, user_id=user_id,
                details={"strikes": strikes, "days": settings["penalty_duration_days"]}
            )
            logger.warning(f"Waitlist penalty applied to {user_id} ({strikes} strikes)")
        await self.db.set_document(FirebaseDB.COLLECTION_WAITLIST_PENALTIES, user_id, values)

    # ==================== REGISTRATION ====================

    async def register(
        self,
        user_id: str,
        group_ids: List[str],
        reservation_date: date
    ) -> Dict[str, Any]:
        """
        Join the queues of several groups for one day.
        Global refusals raise; per-group refusals are reported in the results.
        """
        settings = await get_settings_service().get_waitlist_settings()
        if not settings["enabled"]:
            raise BusinessRuleError("La lista de espera está desactivada", code="WAITLIST_DISABLED")

        penalty = await self.check_penalty_status(user_id)
        if penalty["is_blocked"]:
            raise PermissionDeniedError(
                "Estás penalizado y no puedes unirte a listas de espera", code="WAITLIST_PENALTY"
            )

        reservations = get_reservation_service()
        if await reservations.is_user_blocked(user_id):
            raise PermissionDeniedError("Tu cuenta está bloqueada", code="USER_BLOCKED")
        if not await get_license_plate_service().has_approved_plate(user_id):
            raise BusinessRuleError(
                "Necesitas una matrícula aprobada", code="NO_APPROVED_PLATE"
            )

        date_range = await reservations.get_reservable_date_range()
        if not date_range["min_date"] <= reservation_date <= date_range["max_date"]:
            raise BusinessRuleError("Fecha fuera del periodo de reserva", code="DATE_OUT_OF_RANGE")

        day = reservation_date.isoformat()
        if await reservations.get_active_reservations(
            [("user_id", "==", user_id), ("reservation_date", "==", day)]
        ):
            raise ConflictError("Ya tienes una reserva para esa fecha", code="ALREADY_RESERVED")

        open_entries = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_ENTRIES,
            filters=[("user_id", "==", user_id), ("status", "in", OPEN_ENTRY_STATUSES)]
        )
        remaining = settings["max_simultaneous"] - len(open_entries)
        accessible = set(await reservations.get_user_group_ids(user_id))
        profile = await self.db.get_document(FirebaseDB.COLLECTION_PROFILES, user_id) or {}
        priority = role_priority(profile.get("roles") or [])

        results = []
        for group_id in dict.fromkeys(group_ids):
            result = {"group_id": group_id, "success": False, "entry_id": None, "queue_position": None}

            if group_id not in accessible:
                result["message"] = "No tienes acceso a este grupo"
            elif await reservations.is_date_blocked(reservation_date, group_id):
                result["message"] = "La fecha está bloqueada"
            elif any(e["group_id"] == group_id and e["reservation_date"] == day for e in open_entries):
                result["message"] = "Ya estás en esta lista de espera"
            elif remaining <= 0:
                result["message"] = "Has alcanzado el máximo de listas de espera simultáneas"
            else:
                entry = {
                    "user_id": user_id,
                    "group_id": group_id,
                    "reservation_date": day,
                    "status": WaitlistEntryStatus.ACTIVE.value,
                    "priority": priority,
                    "created_at": utcnow(),
                }
                entry["id"] = await self.db.create_document(
                    FirebaseDB.COLLECTION_WAITLIST_ENTRIES, entry
                )
                open_entries.append(entry)
                remaining -= 1
                await self._log(WaitlistLogAction.ENTRY_CREATED, user_id, entry["id"],
                                details={"group_id": group_id, "reservation_date": day})
                result.update({
                    "success": True,
                    "entry_id": entry["id"],
                    "queue_position": await self.calculate_position(entry),
                    "message": "Registrado en la lista de espera",
                })
            results.append(result)

        registered = sum(1 for r in results if r["success"])
        if registered:
            await get_notification_service().notify(
                user_id,
                NotificationType.WAITLIST_REGISTERED,
                "Apuntado a la lista de espera",
                f"Estás en {registered} lista(s) de espera para el {day}.",
                data={"reservation_date": day},
                send_email=False,
            )
            await self._broadcast("waitlist_updated", {"reservation_date": day})
        logger.info(f"Waitlist registration for {user_id} on {day}: {registered}/{len(results)}")
        return {"registered": registered, "results": results}

    async def cancel_entry(self, user_id: str, entry_id: str, is_admin: bool = False) -> Dict[str, Any]:
        entry = await self._get_entry(entry_id)
        if entry["user_id"] != user_id and not is_admin:
            raise PermissionDeniedError("Esta entrada no te pertenece")
        if entry["status"] not in OPEN_ENTRY_STATUSES:
            raise BusinessRuleError("La entrada ya no está activa")

        await self._close_entry(entry, WaitlistEntryStatus.CANCELLED, "cancelled_by_admin" if is_admin else "cancelled")
        return entry

    async def close_group_entries(self, group_id: str, reason: str) -> int:
        """Cancel every open entry of a group, withdrawing pending offers."""
        entries = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_ENTRIES,
            filters=[("group_id", "==", group_id), ("status", "in", OPEN_ENTRY_STATUSES)]
        )
        for entry in entries:
            await self._close_entry(entry, WaitlistEntryStatus.CANCELLED, reason)
        return len(entries)

    async def _close_entry(self, entry: Dict[str, Any], status: WaitlistEntryStatus, reason: str):
        updates = {"status": status.value, "closed_reason": reason}
        if status == WaitlistEntryStatus.COMPLETED:
            updates["completed_at"] = utcnow()
        else:
            updates["cancelled_at"] = utcnow()
        await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_ENTRIES, entry["id"], updates)
        entry.update(updates)
        if status == WaitlistEntryStatus.CANCELLED:
            await self._log(WaitlistLogAction.ENTRY_CANCELLED, entry["user_id"], entry["id"],
                            details={"reason": reason})
            await self._withdraw_offers(entry)

    async def _withdraw_offers(self, entry: Dict[str, Any]):
        """
        Cancel the pending offers of a closed entry and pass each spot on.
        A withdrawn offer is neither a rejection nor a missed response.
        """
        offers = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_OFFERS,
            filters=[("entry_id", "==", entry["id"]), ("status", "==", WaitlistOfferStatus.PENDING.value)]
        )
        today = local_today().isoformat()
        for offer in offers:
            await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_OFFERS, offer["id"], {
                "status": WaitlistOfferStatus.CANCELLED.value,
                "responded_at": utcnow(),
            })
            logger.info(f"Waitlist offer {offer['id']} withdrawn ({entry.get('closed_reason')})")
            if offer["reservation_date"] >= today:
                await self.process_waitlist_for_spot(
                    offer["spot_id"], date.fromisoformat(offer["reservation_date"])
                )

    async def list_user_entries(self, user_id: str) -> List[Dict[str, Any]]:
        entries = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_ENTRIES,
            filters=[("user_id", "==", user_id), ("status", "in", OPEN_ENTRY_STATUSES)]
        )
        reservations = get_reservation_service()
        for entry in entries:
            entry["queue_position"] = await self.calculate_position(entry)
            group = await reservations.get_group(entry["group_id"])
            entry["group_name"] = (group or {}).get("name")
        return sorted(entries, key=lambda e: e["reservation_date"])

    async def list_pending_offers(self, user_id: str) -> List[Dict[str, Any]]:
        offers = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_OFFERS,
            filters=[("user_id", "==", user_id), ("status", "==", WaitlistOfferStatus.PENDING.value)]
        )
        reservations = get_reservation_service()
        for offer in offers:
            spot = await reservations.get_spot(offer["spot_id"])
            group = await reservations.get_group(offer["group_id"])
            offer["spot_number"] = (spot or {}).get("spot_number")
            offer["group_name"] = (group or {}).get("name")
        return offers

    # ==================== OFFERS ====================

    async def get_next_in_waitlist(
        self,
        spot_id: str,
        group_id: str,
        reservation_date: date
    ) -> Optional[Dict[str, Any]]:
        """
        First active entry whose user may book the spot and has not already
        rejected or let expire an offer for the same spot and day.
        """
        day = reservation_date.isoformat()
        previous = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_OFFERS,
            filters=[
                ("spot_id", "==", spot_id),
                ("reservation_date", "==", day),
                ("status", "in", [WaitlistOfferStatus.REJECTED.value, WaitlistOfferStatus.EXPIRED.value]),
            ]
        )
        excluded = {o["user_id"] for o in previous}
        reservations = get_reservation_service()

        for entry in await self._queue(group_id, day, [WaitlistEntryStatus.ACTIVE.value]):
            if entry["user_id"] in excluded:
                continue
            if (await self.check_penalty_status(entry["user_id"]))["is_blocked"]:
                continue
            validation = await reservations.validate_spot_reservation(
                entry["user_id"], spot_id, reservation_date
            )
            if validation.is_valid:
                return entry
            if validation.error_code == "USER_ALREADY_HAS_RESERVATION":
                await self._close_entry(entry, WaitlistEntryStatus.CANCELLED, "already_reserved")
        return None

    async def process_waitlist_for_spot(
        self,
        spot_id: str,
        reservation_date: date
    ) -> Optional[str]:
        """
        Offer a free spot to the head of its group's queue.

        Returns:
            Optional[str]: ID of the created offer, or None
        """
        settings = await get_settings_service().get_waitlist_settings()
        if not settings["enabled"]:
            return None

        reservations = get_reservation_service()
        spot = await reservations.get_spot(spot_id)
        if not spot or not spot.get("is_active", True):
            return None

        day = reservation_date.isoformat()
        if await reservations.get_active_reservations(
            [("spot_id", "==", spot_id), ("reservation_date", "==", day)]
        ):
            return None
        pending = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_OFFERS,
            filters=[
                ("spot_id", "==", spot_id),
                ("reservation_date", "==", day),
                ("status", "==", WaitlistOfferStatus.PENDING.value),
            ]
        )
        if pending:
            return None

        entry = await self.get_next_in_waitlist(spot_id, spot["group_id"], reservation_date)
        if not entry:
            return None
        return await self.create_offer(entry, spot, settings["acceptance_time_minutes"])

    async def create_offer(
        self,
        entry: Dict[str, Any],
        spot: Dict[str, Any],
        acceptance_minutes: int
    ) -> str:
        now = utcnow()
        offer = {
            "entry_id": entry["id"],
            "user_id": entry["user_id"],
            "spot_id": spot["id"],
            "group_id": spot["group_id"],
            "reservation_date": entry["reservation_date"],
            "status": WaitlistOfferStatus.PENDING.value,
            "created_at": now,
            "expires_at": now + timedelta(minutes=acceptance_minutes),
            "responded_at": None,
            "reservation_id": None,
        }
        offer_id = await self.db.create_document(FirebaseDB.COLLECTION_WAITLIST_OFFERS, offer)
        await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_ENTRIES, entry["id"], {
            "status": WaitlistEntryStatus.OFFER_PENDING.value,
        })
        await self._log(WaitlistLogAction.OFFER_CREATED, entry["user_id"], entry["id"], offer_id,
                        details={"spot_id": spot["id"], "reservation_date": entry["reservation_date"]})

        await get_notification_service().notify(
            entry["user_id"],
            NotificationType.WAITLIST_OFFER,
            "¡Plaza disponible!",
            f"La plaza {spot.get('spot_number')} está libre el {entry['reservation_date']}. "
            f"Tienes {acceptance_minutes} minutos para aceptarla.",
            data={"offer_id": offer_id, "spot_id": spot["id"]},
            priority=NotificationPriority.URGENT,
        )
        await self._broadcast("waitlist_offer_created", {"offer_id": offer_id, "user_id": entry["user_id"]})
        logger.info(f"Waitlist offer {offer_id}: spot {spot['id']} to {entry['user_id']}")
        return offer_id

    async def accept_offer(self, user_id: str, offer_id: str) -> Dict[str, Any]:
        """Accept a pending offer: books the spot and leaves every queue of that day."""
        offer = await self._get_offer(offer_id)
        if offer["user_id"] != user_id:
            raise PermissionDeniedError("Esta oferta no te pertenece")
        if offer["status"] != WaitlistOfferStatus.PENDING.value:
            raise BusinessRuleError("La oferta ya no está pendiente", code="OFFER_NOT_PENDING")
        if as_utc(offer["expires_at"]) <= utcnow():
            await self._expire_offer(offer)
            raise BusinessRuleError("La oferta ha caducado", code="OFFER_EXPIRED")

        reservation_date = date.fromisoformat(offer["reservation_date"])
        try:
            reservation = await get_reservation_service().create_reservation(
                user_id, offer["spot_id"], reservation_date, source="waitlist"
            )
        except ReserveoError:
            await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_OFFERS, offer_id, {
                "status": WaitlistOfferStatus.EXPIRED.value,
                "responded_at": utcnow(),
            })
            await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_ENTRIES, offer["entry_id"], {
                "status": WaitlistEntryStatus.ACTIVE.value,
            })
            raise

        now = utcnow()
        await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_OFFERS, offer_id, {
            "status": WaitlistOfferStatus.ACCEPTED.value,
            "responded_at": now,
            "reservation_id": reservation["id"],
        })
        entry = await self._get_entry(offer["entry_id"])
        await self._close_entry(entry, WaitlistEntryStatus.COMPLETED, "offer_accepted")

        others = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_ENTRIES,
            filters=[
                ("user_id", "==", user_id),
                ("reservation_date", "==", offer["reservation_date"]),
                ("status", "in", OPEN_ENTRY_STATUSES),
            ]
        )
        for other in others:
            await self._close_entry(other, WaitlistEntryStatus.CANCELLED, "reservation_obtained")

        await self._log(WaitlistLogAction.OFFER_ACCEPTED, user_id, offer["entry_id"], offer_id,
                        details={"reservation_id": reservation["id"]})
        await get_notification_service().notify(
            user_id,
            NotificationType.WAITLIST_ACCEPTED,
            "Oferta aceptada",
            f"Tu reserva para el {offer['reservation_date']} está confirmada.",
            data={"reservation_id": reservation["id"]},
            send_email=False,
        )
        logger.info(f"Waitlist offer {offer_id} accepted by {user_id}")
        return reservation

    async def reject_offer(self, user_id: str, offer_id: str) -> Dict[str, Any]:
        """Reject an offer: the user stays queued and the spot moves on."""
        offer = await self._get_offer(offer_id)
        if offer["user_id"] != user_id:
            raise PermissionDeniedError("Esta oferta no te pertenece")
        if offer["status"] != WaitlistOfferStatus.PENDING.value:
            raise BusinessRuleError("La oferta ya no está pendiente", code="OFFER_NOT_PENDING")

        await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_OFFERS, offer_id, {
            "status": WaitlistOfferStatus.REJECTED.value,
            "responded_at": utcnow(),
        })
        await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_ENTRIES, offer["entry_id"], {
            "status": WaitlistEntryStatus.ACTIVE.value,
        })
        await self._log(WaitlistLogAction.OFFER_REJECTED, user_id, offer["entry_id"], offer_id)
        await self._register_strike(user_id, "rejection_count")

        next_offer = await self.process_waitlist_for_spot(
            offer["spot_id"], date.fromisoformat(offer["reservation_date"])
        )
        logger.info(f"Waitlist offer {offer_id} rejected by {user_id}")
        return {"offer_id": offer_id, "status": WaitlistOfferStatus.REJECTED.value,
                "next_offer_id": next_offer}

    async def _expire_offer(self, offer: Dict[str, Any]) -> Optional[str]:
        await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_OFFERS, offer["id"], {
            "status": WaitlistOfferStatus.EXPIRED.value,
            "responded_at": utcnow(),
        })
        await self.db.update_document(FirebaseDB.COLLECTION_WAITLIST_ENTRIES, offer["entry_id"], {
            "status": WaitlistEntryStatus.ACTIVE.value,
        })
        await self._log(WaitlistLogAction.OFFER_EXPIRED, offer["user_id"], offer["entry_id"], offer["id"])
        await self._register_strike(offer["user_id"], "no_response_count")
        await get_notification_service().notify(
            offer["user_id"],
            NotificationType.WAITLIST_EXPIRED,
            "Oferta caducada",
            f"No respondiste a tiempo a la oferta del {offer['reservation_date']}. "
            "Sigues en la lista de espera.",
            data={"offer_id": offer["id"]},
            send_email=False,
        )
        return await self.process_waitlist_for_spot(
            offer["spot_id"], date.fromisoformat(offer["reservation_date"])
        )

    async def expire_offers(self) -> int:
        """Expire unanswered offers and move each spot to the next user."""
        pending = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_OFFERS,
            filters=[
                ("status", "==", WaitlistOfferStatus.PENDING.value),
                ("expires_at", "<=", utcnow()),
            ]
        )
        for offer in pending:
            await self._expire_offer(offer)
        if pending:
            logger.info(f"Expired {len(pending)} waitlist offer(s)")
        return len(pending)

    # ==================== CLEANUP ====================

    async def cleanup_expired_entries(self) -> Dict[str, int]:
        """
        Close open entries that can no longer succeed.

        Returns:
            Dict[str, int]: Counts per reason plus total
        """
        today = local_today().isoformat()
        reservations = get_reservation_service()
        plates = get_license_plate_service()
        counts = {"expired_dates": 0, "blocked_users": 0, "no_access": 0, "no_plate": 0}

        entries = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_ENTRIES,
            filters=[("status", "in", OPEN_ENTRY_STATUSES)]
        )
        access_cache: Dict[str, List[str]] = {}
        for entry in entries:
            user_id = entry["user_id"]
            if user_id not in access_cache:
                access_cache[user_id] = await reservations.get_user_group_ids(user_id)

            if entry["reservation_date"] < today:
                reason = "expired_dates"
            elif await reservations.is_user_blocked(user_id):
                reason = "blocked_users"
            elif entry["group_id"] not in access_cache[user_id]:
                reason = "no_access"
            elif not await plates.has_approved_plate(user_id):
                reason = "no_plate"
            else:
                continue

            await self._close_entry(entry, WaitlistEntryStatus.CANCELLED, reason)
            counts[reason] += 1

        counts["total"] = sum(counts.values())
        await self._log(WaitlistLogAction.CLEANUP_EXECUTED, details=counts)
        logger.info(f"Waitlist cleanup: {counts}")
        return counts

    # ==================== ADMIN ====================

    async def get_statistics(self) -> Dict[str, Any]:
        entries = await self.db.query_documents(FirebaseDB.COLLECTION_WAITLIST_ENTRIES)
        offers = await self.db.query_documents(FirebaseDB.COLLECTION_WAITLIST_OFFERS)

        open_entries = [e for e in entries if e["status"] in OPEN_ENTRY_STATUSES]
        by_status: Dict[str, int] = {s.value: 0 for s in WaitlistOfferStatus}
        for offer in offers:
            by_status[offer["status"]] = by_status.get(offer["status"], 0) + 1
        answered = (
            by_status[WaitlistOfferStatus.ACCEPTED.value]
            + by_status[WaitlistOfferStatus.REJECTED.value]
            + by_status[WaitlistOfferStatus.EXPIRED.value]
        )

        def rate(status: WaitlistOfferStatus) -> float:
            return round(by_status[status.value] / answered * 100, 1) if answered else 0.0

        waits = [
            (as_utc(e["completed_at"]) - as_utc(e["created_at"])).total_seconds() / 3600
            for e in entries
            if e["status"] == WaitlistEntryStatus.COMPLETED.value and e.get("completed_at")
        ]

        per_group: Dict[str, int] = {}
        for entry in open_entries:
            per_group[entry["group_id"]] = per_group.get(entry["group_id"], 0) + 1
        reservations = get_reservation_service()
        entries_by_group = []
        for group_id, count in sorted(per_group.items(), key=lambda kv: -kv[1]):
            group = await reservations.get_group(group_id)
            entries_by_group.append({
                "group_id": group_id,
                "group_name": (group or {}).get("name"),
                "count": count,
            })

        return {
            "active_entries": len(open_entries),
            "pending_offers": by_status[WaitlistOfferStatus.PENDING.value],
            "unique_users": len({e["user_id"] for e in open_entries}),
            "acceptance_rate": rate(WaitlistOfferStatus.ACCEPTED),
            "rejection_rate": rate(WaitlistOfferStatus.REJECTED),
            "expiration_rate": rate(WaitlistOfferStatus.EXPIRED),
            "average_wait_hours": round(sum(waits) / len(waits), 2) if waits else 0.0,
            "entries_by_group": entries_by_group,
            "offers_by_status": by_status,
        }

    async def list_entries(
        self,
        group_id: Optional[str] = None,
        reservation_date: Optional[date] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Dict[str, Any]:
        filters = []
        if group_id:
            filters.append(("group_id", "==", group_id))
        if reservation_date:
            filters.append(("reservation_date", "==", reservation_date.isoformat()))
        if status:
            filters.append(("status", "==", status))

        entries = await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_ENTRIES,
            filters=filters,
            order_by="created_at",
            descending=True
        )
        start = (page - 1) * page_size
        return {
            "items": entries[start:start + page_size],
            "total": len(entries),
            "page": page,
            "page_size": page_size,
        }

    async def remove_entry(self, entry_id: str, admin_id: str) -> Dict[str, Any]:
        return await self.cancel_entry(admin_id, entry_id, is_admin=True)

    async def get_logs(
        self,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        filters = []
        if user_id:
            filters.append(("user_id", "==", user_id))
        if action:
            filters.append(("action", "==", action))
        return await self.db.query_documents(
            FirebaseDB.COLLECTION_WAITLIST_LOGS,
            filters=filters,
            order_by="created_at",
            descending=True,
            limit=limit
        )


# Singleton instance
_waitlist_service: Optional[WaitlistService] = None


def get_waitlist_service() -> WaitlistService:
    """Get singleton waitlist service instance."""
    global _waitlist_service
    if _waitlist_service is None:
        _waitlist_service = WaitlistService()
    return _waitlist_service
