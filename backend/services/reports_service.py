"""
Reserveo - Reports Service
Check-in compliance reports and reservation-speed statistics
for the admin dashboard, with CSV export.
"""

from typing import Optional, Dict, Any, List, Tuple
from datetime import date, datetime, timedelta, timezone
from collections import Counter, defaultdict
import csv
import io
import logging

from database.firebase_db import get_db, FirebaseDB
from services.settings_service import get_settings_service
from utils.helpers import local_today, local_tz, local_midnight, as_utc, full_name

# Configure logging
logger = logging.getLogger(__name__)

# Share of fast reservations above which a user counts as a power user
POWER_USER_PERCENTAGE = 70.0

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _minutes_between(start: datetime, end: datetime) -> float:
    return round((end - start).total_seconds() / 60, 1)


class ReportsService:
    """Service class for admin reports (read-only)."""

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()

    async def _lookup(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return {doc["id"]: doc for doc in await self.db.query_documents(collection)}

    # ==================== CHECK-IN ====================

    async def get_today_infractions(self) -> List[Dict[str, Any]]:
        """Infractions detected for today's reservations, with user and spot names."""
        infractions = await self.db.query_documents(
            FirebaseDB.COLLECTION_INFRACTIONS,
            filters=[("reservation_date", "==", local_today().isoformat())]
        )
        profiles = await self._lookup(FirebaseDB.COLLECTION_PROFILES)
        spots = await self._lookup(FirebaseDB.COLLECTION_SPOTS)
        for infraction in infractions:
            profile = profiles.get(infraction["user_id"])
            infraction["user_name"] = full_name(profile)
            infraction["user_email"] = (profile or {}).get("email")
            infraction["spot_number"] = spots.get(infraction["spot_id"], {}).get("spot_number")
        infractions.sort(key=lambda i: as_utc(i.get("detected_at")) or EPOCH, reverse=True)
        return infractions

    async def get_checkin_history(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        group_id: Optional[str] = None,
        user_id: Optional[str] = None,
        spot_id: Optional[str] = None,
        has_checkout: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """
        Check-in records in a date range (default: last 30 days).

        Each record carries duration_minutes when a checkout exists.
        """
        end_date = end_date or local_today()
        start_date = start_date or end_date - timedelta(days=30)
        filters = [
            ("reservation_date", ">=", start_date.isoformat()),
            ("reservation_date", "<=", end_date.isoformat()),
        ]
        for field, value in (("group_id", group_id), ("user_id", user_id), ("spot_id", spot_id)):
            if value:
                filters.append((field, "==", value))
        checkins = await self.db.query_documents(FirebaseDB.COLLECTION_CHECKINS, filters=filters)

        profiles = await self._lookup(FirebaseDB.COLLECTION_PROFILES)
        spots = await self._lookup(FirebaseDB.COLLECTION_SPOTS)
        groups = await self._lookup(FirebaseDB.COLLECTION_GROUPS)

        history = []
        for checkin in checkins:
            checkout_at = as_utc(checkin.get("checkout_at"))
            if has_checkout is not None and bool(checkout_at) != has_checkout:
                continue
            checkin_at = as_utc(checkin.get("checkin_at"))
            history.append({
                **checkin,
                "user_name": full_name(profiles.get(checkin["user_id"])),
                "spot_number": spots.get(checkin["spot_id"], {}).get("spot_number"),
                "group_name": groups.get(checkin.get("group_id"), {}).get("name"),
                "duration_minutes": (
                    _minutes_between(checkin_at, checkout_at) if checkin_at and checkout_at else None
                ),
            })
        history.sort(key=lambda c: (c["reservation_date"], c["spot_number"] or ""), reverse=True)
        return history

    async def get_checkin_stats(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        group_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Totals and compliance rate over past reservations in the range."""
        end_date = end_date or local_today()
        start_date = start_date or end_date - timedelta(days=30)
        filters = [
            ("reservation_date", ">=", start_date.isoformat()),
            ("reservation_date", "<=", end_date.isoformat()),
        ]
        if group_id:
            filters.append(("group_id", "==", group_id))

        checkins = await self.db.query_documents(FirebaseDB.COLLECTION_CHECKINS, filters=filters)
        infractions = await self.db.query_documents(FirebaseDB.COLLECTION_INFRACTIONS, filters=filters)

        by_type = Counter(i["infraction_type"] for i in infractions)
        on_time = sum(1 for c in checkins if not c.get("was_late"))
        expected = len(checkins) + by_type.get("checkin", 0) - sum(1 for c in checkins if c.get("was_late"))
        durations = [
            _minutes_between(as_utc(c["checkin_at"]), as_utc(c["checkout_at"]))
            for c in checkins if c.get("checkin_at") and c.get("checkout_at")
        ]

        return {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "total_checkins": len(checkins),
            "on_time_checkins": on_time,
            "late_checkins": len(checkins) - on_time,
            "checkouts": len(durations),
            "checkin_infractions": by_type.get("checkin", 0),
            "checkout_infractions": by_type.get("checkout", 0),
            "compliance_rate": round(on_time * 100 / expected, 1) if expected else None,
            "avg_duration_minutes": round(sum(durations) / len(durations), 1) if durations else None,
        }

    # ==================== RESERVATION SPEED ====================

    async def _reservations_created_between(
        self,
        start_date: date,
        end_date: date,
        group_id: Optional[str] = None
    ) -> List[Tuple[Dict[str, Any], datetime]]:
        """Reservations created in [start_date, end_date] with local creation time."""
        filters = [
            ("created_at", ">=", local_midnight(start_date)),
            ("created_at", "<", local_midnight(end_date + timedelta(days=1))),
        ]
        if group_id:
            filters.append(("group_id", "==", group_id))
        reservations = await self.db.query_documents(
            FirebaseDB.COLLECTION_RESERVATIONS, filters=filters, order_by="created_at"
        )
        tz = local_tz()
        return [(r, as_utc(r["created_at"]).astimezone(tz)) for r in reservations]

    @staticmethod
    def _minutes_from_unlock(created_local: datetime, unlock_hour: int) -> float:
        unlock = created_local.replace(hour=unlock_hour, minute=0, second=0, microsecond=0)
        return _minutes_between(unlock, created_local)

    async def get_reservation_stats(
        self,
        start_date: date,
        end_date: date,
        group_id: Optional[str] = None,
        top_limit: int = 10
    ) -> Dict[str, Any]:
        """
        Booking-speed dashboard: totals, average minutes after the daily
        unlock, peak hour, activity by hour, weekday x hour heatmap and the
        fastest users.
        """
        settings = await get_settings_service().get_reservation_settings()
        unlock_hour = settings["daily_refresh_hour"]
        threshold = settings["fast_reservation_threshold_minutes"]
        rows = await self._reservations_created_between(start_date, end_date, group_id)

        by_hour = Counter(created.hour for _, created in rows)
        # Day 0 is Sunday
        heatmap = Counter(((created.weekday() + 1) % 7, created.hour) for _, created in rows)
        after_unlock = [
            (r, self._minutes_from_unlock(created, unlock_hour)) for r, created in rows
            if created.hour >= unlock_hour
        ]

        # Bookings made before the unlock are left out of every speed figure
        per_user: Dict[str, List[float]] = defaultdict(list)
        for reservation, minutes in after_unlock:
            per_user[reservation["user_id"]].append(minutes)

        profiles = await self._lookup(FirebaseDB.COLLECTION_PROFILES)
        top_users = []
        for user_id, minutes in per_user.items():
            fast = sum(1 for m in minutes if m <= threshold)
            if not fast:
                continue
            percentage = round(fast * 100 / len(minutes), 1)
            profile = profiles.get(user_id)
            top_users.append({
                "user_id": user_id,
                "full_name": full_name(profile),
                "email": (profile or {}).get("email"),
                "fast_reservations": fast,
                "total_reservations": len(minutes),
                "percentage": percentage,
                "avg_minutes": round(sum(minutes) / len(minutes), 1),
                "is_power_user": percentage > POWER_USER_PERCENTAGE,
            })
        top_users.sort(key=lambda u: (-u["fast_reservations"], u["avg_minutes"]))
        top_users = top_users[:top_limit]

        minutes_all = [m for _, m in after_unlock]
        fastest = min(after_unlock, key=lambda item: item[1]) if after_unlock else None
        return {
            "general": {
                "total_reservations": len(rows),
                "avg_minutes": round(sum(minutes_all) / len(minutes_all), 1) if minutes_all else None,
                "peak_hour": by_hour.most_common(1)[0][0] if by_hour else None,
                "fastest_user": full_name(profiles.get(fastest[0]["user_id"])) if fastest else None,
                "fastest_time": fastest[1] if fastest else None,
            },
            "activity_by_hour": [{"hour": h, "reservations": by_hour.get(h, 0)} for h in range(24)],
            "heatmap": [
                {"day_of_week": day, "hour": hour, "count": count}
                for (day, hour), count in sorted(heatmap.items())
            ],
            "top_users": top_users,
            "unlock_hour": unlock_hour,
            "fast_threshold_minutes": threshold,
        }

    # ==================== CSV EXPORT ====================

    @staticmethod
    def _to_csv(header: List[str], rows: List[List[Any]]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(header)
        writer.writerows(rows)
        return buffer.getvalue()

    async def export_top_users_csv(
        self,
        start_date: date,
        end_date: date,
        group_id: Optional[str] = None
    ) -> str:
        stats = await self.get_reservation_stats(start_date, end_date, group_id, top_limit=20)
        return self._to_csv(
            ["Usuario", "Email", "Reservas Rápidas", "Total Reservas", "Porcentaje", "Minutos Promedio"],
            [
                [
                    u["full_name"], u["email"] or "N/A", u["fast_reservations"],
                    u["total_reservations"], f"{u['percentage']:.1f}%", u["avg_minutes"],
                ]
                for u in stats["top_users"]
            ],
        )

    async def export_reservations_csv(
        self,
        start_date: date,
        end_date: date,
        group_id: Optional[str] = None
    ) -> str:
        settings = await get_settings_service().get_reservation_settings()
        unlock_hour = settings["daily_refresh_hour"]
        rows = await self._reservations_created_between(start_date, end_date, group_id)
        profiles = await self._lookup(FirebaseDB.COLLECTION_PROFILES)
        spots = await self._lookup(FirebaseDB.COLLECTION_SPOTS)
        groups = await self._lookup(FirebaseDB.COLLECTION_GROUPS)

        lines = []
        for reservation, created in rows:
            profile = profiles.get(reservation["user_id"])
            spot = spots.get(reservation["spot_id"], {})
            lines.append([
                reservation["reservation_date"],
                created.strftime("%H:%M:%S"),
                full_name(profile),
                (profile or {}).get("email") or "N/A",
                groups.get(reservation.get("group_id"), {}).get("name", "N/A"),
                spot.get("spot_number", "N/A"),
                self._minutes_from_unlock(created, unlock_hour),
            ])
        logger.info(f"Reservation export: {len(lines)} rows ({start_date} - {end_date})")
        return self._to_csv(
            ["Fecha Reserva", "Hora Reserva", "Usuario", "Email", "Grupo", "Plaza",
             "Minutos desde Desbloqueo"],
            lines,
        )

    async def export_checkin_history_csv(self, **filters) -> str:
        history = await self.get_checkin_history(**filters)
        tz = local_tz()

        def fmt(value) -> str:
            value = as_utc(value)
            return value.astimezone(tz).strftime("%H:%M") if value else ""

        return self._to_csv(
            ["Fecha", "Usuario", "Grupo", "Plaza", "Entrada", "Salida", "Duración (min)", "Tarde"],
            [
                [
                    c["reservation_date"], c["user_name"], c["group_name"] or "",
                    c["spot_number"] or "", fmt(c.get("checkin_at")), fmt(c.get("checkout_at")),
                    c["duration_minutes"] if c["duration_minutes"] is not None else "",
                    "Sí" if c.get("was_late") else "No",
                ]
                for c in history
            ],
        )


# Singleton instance
_reports_service: Optional[ReportsService] = None


def get_reports_service() -> ReportsService:
    """Get singleton reports service instance."""
    global _reports_service
    if _reports_service is None:
        _reports_service = ReportsService()
    return _reports_service
