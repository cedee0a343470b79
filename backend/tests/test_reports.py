"""
Reserveo - Reports Tests
Booking-speed statistics, check-in reports, CSV exports and the cron log.

Run: pytest tests/test_reports.py -v
"""

import pytest
from fastapi.testclient import TestClient
from datetime import timedelta

from database.firebase_db import FirebaseDB
from utils.helpers import local_midnight, utcnow


@pytest.fixture
def morning_bookings(seeded, make_reservation, today, tomorrow):
    """user-1 books 2 minutes after the 10:00 unlock, user-2 half an hour after."""
    unlock = local_midnight(today) + timedelta(hours=10)
    make_reservation("user-1", "spot-a1", tomorrow, created_at=unlock + timedelta(minutes=2))
    make_reservation("user-2", "spot-a2", tomorrow, created_at=unlock + timedelta(minutes=30))
    return seeded


@pytest.fixture
def todays_checkins(seeded, today):
    """One completed on-time stay of 90 minutes and one missed check-in."""
    checkin_at = local_midnight(today) + timedelta(hours=8)
    seeded.seed(FirebaseDB.COLLECTION_CHECKINS, "checkin-1", {
        "reservation_id": "res-1",
        "user_id": "user-1",
        "spot_id": "spot-a1",
        "group_id": "group-general",
        "reservation_date": today.isoformat(),
        "checkin_at": checkin_at,
        "checkout_at": checkin_at + timedelta(minutes=90),
        "was_late": False,
    })
    seeded.seed(FirebaseDB.COLLECTION_INFRACTIONS, "inf-1", {
        "user_id": "user-2",
        "reservation_id": "res-2",
        "spot_id": "spot-a2",
        "group_id": "group-general",
        "reservation_date": today.isoformat(),
        "infraction_type": "checkin",
        "status": "pending",
        "detected_at": utcnow(),
    })
    return seeded


def csv_lines(response) -> list:
    return response.content.decode("utf-8-sig").splitlines()


# ============================================================
# RESERVATION SPEED
# ============================================================

class TestReservationStats:
    """Tests for GET /admin/reports/reservations/stats."""

    def test_general_figures(self, morning_bookings, admin_client: TestClient):
        """
        Test: Two bookings at 10:02 and 10:30 with the unlock at 10:00
        Expected: Peak hour 10, average 16 minutes, Ana fastest at 2 minutes
        """
        response = admin_client.get("/admin/reports/reservations/stats")

        assert response.status_code == 200
        general = response.json()["general"]
        assert general["total_reservations"] == 2
        assert general["peak_hour"] == 10
        assert general["avg_minutes"] == 16.0
        assert general["fastest_user"] == "Ana García"
        assert general["fastest_time"] == 2.0

    def test_top_users_only_fast_bookers(self, morning_bookings, admin_client: TestClient):
        stats = admin_client.get("/admin/reports/reservations/stats").json()

        assert [u["user_id"] for u in stats["top_users"]] == ["user-1"]
        top = stats["top_users"][0]
        assert top["fast_reservations"] == 1
        assert top["percentage"] == 100.0
        assert top["is_power_user"] is True

    def test_early_booking_not_counted_in_percentage(
        self, morning_bookings, make_reservation, admin_client: TestClient, today, tomorrow
    ):
        """
        Test: Ana also holds a booking created at 09:00, before the 10:00 unlock
        Expected: Her share stays at 100% over the one booking made after the unlock
        """
        make_reservation(
            "user-1", "spot-a1", tomorrow + timedelta(days=1),
            created_at=local_midnight(today) + timedelta(hours=9),
        )

        top = admin_client.get("/admin/reports/reservations/stats").json()["top_users"][0]

        assert top["user_id"] == "user-1"
        assert top["total_reservations"] == 1
        assert top["percentage"] == 100.0
        assert top["is_power_user"] is True

    def test_activity_and_heatmap(self, morning_bookings, admin_client: TestClient, today):
        stats = admin_client.get("/admin/reports/reservations/stats").json()

        assert len(stats["activity_by_hour"]) == 24
        assert stats["activity_by_hour"][10] == {"hour": 10, "reservations": 2}
        sunday_based = (today.weekday() + 1) % 7
        assert stats["heatmap"] == [{"day_of_week": sunday_based, "hour": 10, "count": 2}]

    def test_empty_period(self, seeded, admin_client: TestClient):
        general = admin_client.get("/admin/reports/reservations/stats").json()["general"]

        assert general["total_reservations"] == 0
        assert general["peak_hour"] is None
        assert general["fastest_user"] is None

    def test_requires_admin(self, user_client: TestClient):
        response = user_client.get("/admin/reports/reservations/stats")

        assert response.status_code == 403


# ============================================================
# CHECK-IN REPORTS
# ============================================================

class TestCheckinReports:
    """Tests for the check-in history, stats and today's infractions."""

    def test_today_infractions(self, todays_checkins, admin_client: TestClient):
        response = admin_client.get("/admin/reports/infractions/today")

        assert response.status_code == 200
        infraction = response.json()[0]
        assert infraction["user_name"] == "Luis Pérez"
        assert infraction["user_email"] == "luis@reserveo.com"
        assert infraction["spot_number"] == "A2"

    def test_history_with_duration(self, todays_checkins, admin_client: TestClient):
        history = admin_client.get("/admin/reports/checkins").json()

        assert len(history) == 1
        assert history[0]["duration_minutes"] == 90.0
        assert history[0]["group_name"] == "General"

    def test_history_without_checkout_filter(self, todays_checkins, admin_client: TestClient):
        response = admin_client.get("/admin/reports/checkins", params={"has_checkout": "false"})

        assert response.json() == []

    def test_stats(self, todays_checkins, admin_client: TestClient):
        """
        Test: One on-time check-in and one missed check-in
        Expected: 50% compliance, average stay 90 minutes
        """
        stats = admin_client.get("/admin/reports/checkins/stats").json()

        assert stats["total_checkins"] == 1
        assert stats["on_time_checkins"] == 1
        assert stats["checkin_infractions"] == 1
        assert stats["checkout_infractions"] == 0
        assert stats["compliance_rate"] == 50.0
        assert stats["avg_duration_minutes"] == 90.0


# ============================================================
# CSV EXPORTS
# ============================================================

class TestExports:
    """Tests for the CSV downloads."""

    def test_reservations_csv(self, morning_bookings, admin_client: TestClient, tomorrow):
        response = admin_client.get("/admin/reports/export/reservations.csv")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment" in response.headers["content-disposition"]
        assert response.content.startswith(b"\xef\xbb\xbf")
        lines = csv_lines(response)
        assert lines[0] == (
            "Fecha Reserva,Hora Reserva,Usuario,Email,Grupo,Plaza,Minutos desde Desbloqueo"
        )
        assert lines[1] == f"{tomorrow.isoformat()},10:02:00,Ana García,ana@reserveo.com,General,A1,2.0"
        assert len(lines) == 3

    def test_top_users_csv(self, morning_bookings, admin_client: TestClient):
        lines = csv_lines(admin_client.get("/admin/reports/export/top-users.csv"))

        assert lines[0].startswith("Usuario,Email,Reservas Rápidas")
        assert lines[1] == "Ana García,ana@reserveo.com,1,1,100.0%,2.0"

    def test_checkins_csv(self, todays_checkins, admin_client: TestClient, today):
        lines = csv_lines(admin_client.get("/admin/reports/export/checkins.csv"))

        assert lines[0] == "Fecha,Usuario,Grupo,Plaza,Entrada,Salida,Duración (min),Tarde"
        assert lines[1] == f"{today.isoformat()},Ana García,General,A1,08:00,09:30,90.0,No"


# ============================================================
# CRON LOG
# ============================================================

class TestCronLogs:
    """Tests for GET /admin/reports/cron-logs."""

    def test_job_runs_are_listed(self, admin_client: TestClient, api_key_headers):
        admin_client.post("/jobs/expire_user_blocks", headers=api_key_headers)
        admin_client.post("/jobs/cleanup_waitlist", headers=api_key_headers)

        response = admin_client.get("/admin/reports/cron-logs", params={"job_name": "cleanup_waitlist"})

        assert response.status_code == 200
        logs = response.json()
        assert len(logs) == 1
        assert logs[0]["job_name"] == "cleanup_waitlist"
        assert logs[0]["status"] == "success"
