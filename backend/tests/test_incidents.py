"""
Reserveo - Incident Tests
Occupied spot reports, reassignment, evidence photos and admin review.

Run: pytest tests/test_incidents.py -v
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch, AsyncMock

from database.firebase_db import FirebaseDB
from utils.errors import ConflictError

SIGNED_URL = "https://storage.reserveo.com/signed"


def report(client: TestClient, reservation_id: str, plate=None, photo=None):
    data = {"reservation_id": reservation_id, "description": "Hay un coche en mi plaza"}
    if plate:
        data["offending_plate"] = plate
    files = {"photo": photo} if photo else None
    return client.post("/incidents", data=data, files=files)


@pytest.fixture
def todays_reservation(seeded, make_reservation, today):
    return make_reservation("user-1", "spot-a1", today, doc_id="res-a1")


@pytest.fixture
def reported(todays_reservation, user_client: TestClient):
    """Incident by user-1 naming user-2's plate, with a photo."""
    response = report(
        user_client, todays_reservation, plate="5678-def",
        photo=("evidence.jpg", b"\xff\xd8\xff fake jpeg", "image/jpeg"),
    )
    return response.json()["id"]


class TestReport:
    """Tests for POST /incidents."""

    def test_report_reassigns_free_spot(self, todays_reservation, user_client: TestClient, seeded):
        """
        Test: user-1 reports A1 occupied
        Expected: Director spot skipped, reassigned to A2, original reservation cancelled
        """
        response = report(user_client, todays_reservation)

        assert response.status_code == 201
        incident = response.json()
        assert incident["status"] == "pending"
        assert incident["reassigned_spot_id"] == "spot-a2"
        assert incident["reassigned_spot_number"] == "A2"

        reservations = seeded.collections["reservations"]
        assert reservations[todays_reservation]["status"] == "cancelled"
        new = reservations[incident["reassigned_reservation_id"]]
        assert new["source"] == "incident"
        assert new["user_id"] == "user-1"
        log = seeded.all("reservation_cancellation_log")
        assert log[0]["triggered_by"] == "incident_reassignment"

    def test_report_notifies_admins_and_reporter(self, todays_reservation, user_client: TestClient, seeded):
        report(user_client, todays_reservation)

        by_user = {(n["user_id"], n["type"]) for n in seeded.all("notifications")}
        assert ("admin-1", "incident_reported") in by_user
        assert ("user-1", "incident_reassignment") in by_user

    def test_offender_resolved_from_plate(self, reported, seeded):
        incident = seeded.collections["incident_reports"][reported]

        assert incident["offending_license_plate"] == "5678DEF"
        assert incident["offending_user_id"] == "user-2"

    def test_photo_uploaded_and_signed(self, todays_reservation, user_client: TestClient, storage_bucket):
        response = report(
            user_client, todays_reservation,
            photo=("evidence.png", b"\x89PNG fake", "image/png"),
        )

        incident = response.json()
        assert incident["photo_path"] == f"incident-photos/user-1/{incident['id']}.png"
        assert incident["photo_url"] == SIGNED_URL
        storage_bucket.blob.return_value.upload_from_string.assert_called_once()

    def test_unsupported_photo_type(self, todays_reservation, user_client: TestClient, seeded):
        response = report(
            user_client, todays_reservation,
            photo=("notes.txt", b"hello", "text/plain"),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_PHOTO_TYPE"
        assert seeded.all("incident_reports") == []

    def test_falls_back_to_reserve_group(self, seeded, make_reservation, login, today):
        """
        Test: Every spot of user-2's groups is taken
        Expected: Reassigned to the incident reserve spot R1
        """
        reservation_id = make_reservation("user-2", "spot-a1", today)
        make_reservation("user-1", "spot-a2", today)
        make_reservation("admin-1", "spot-a3", today)
        make_reservation("user-9", "spot-a4", today)
        make_reservation("user-8", "spot-p1", today)

        response = report(login("user-2"), reservation_id)

        assert response.json()["reassigned_spot_id"] == "spot-r1"

    def test_no_free_spot(self, seeded, make_reservation, login, today):
        reservation_id = make_reservation("user-2", "spot-a1", today)
        for user, spot in [("u-a", "spot-a2"), ("u-b", "spot-a3"), ("u-c", "spot-a4"),
                           ("u-d", "spot-p1"), ("u-e", "spot-r1")]:
            make_reservation(user, spot, today)

        response = report(login("user-2"), reservation_id)

        assert response.status_code == 201
        assert response.json()["reassigned_spot_id"] is None
        assert seeded.collections["reservations"][reservation_id]["status"] == "active"

    def test_failed_reassignment_keeps_original(self, todays_reservation, user_client: TestClient, seeded):
        """
        Test: The free spot is taken by someone else while the incident is filed
        Expected: Report stored without reassignment, original reservation still active
        """
        taken = AsyncMock(side_effect=ConflictError("Plaza ocupada", code="SPOT_ALREADY_RESERVED"))
        with patch.object(seeded, "create_reservation_transaction", taken):
            response = report(user_client, todays_reservation)

        assert response.status_code == 201
        incident = response.json()
        assert incident["reassigned_spot_id"] is None
        assert incident["reassigned_reservation_id"] is None
        assert seeded.collections["reservations"][todays_reservation]["status"] == "active"
        assert seeded.all("reservation_cancellation_log") == []
        assert len(seeded.all("incident_reports")) == 1
        types = [n["type"] for n in seeded.all("notifications") if n["user_id"] == "user-1"]
        assert "incident_reassignment" not in types

    def test_only_todays_reservation(self, seeded, make_reservation, user_client: TestClient, tomorrow):
        reservation_id = make_reservation("user-1", "spot-a1", tomorrow)

        response = report(user_client, reservation_id)

        assert response.json()["code"] == "INVALID_DATE"

    def test_not_own_reservation(self, todays_reservation, login):
        response = report(login("user-2"), todays_reservation)

        assert response.status_code == 403

    def test_list_my_incidents(self, reported, user_client: TestClient):
        response = user_client.get("/incidents/mine")

        assert response.status_code == 200
        incidents = response.json()
        assert [i["id"] for i in incidents] == [reported]
        assert incidents[0]["original_spot_number"] == "A1"


class TestAdminReview:
    """Tests for /admin/incidents."""

    def test_list_enriched(self, reported, login):
        response = login("admin-1").get("/admin/incidents", params={"status": "pending"})

        assert response.status_code == 200
        incident = response.json()[0]
        assert incident["reporter_name"] == "Ana García"
        assert incident["offending_user_name"] == "Luis Pérez"
        assert incident["offending_user_warnings"] == 0
        assert incident["photo_url"] == SIGNED_URL

    def test_confirm_warns_offender(self, reported, login, seeded):
        """
        Test: Confirm an incident with an identified offender
        Expected: Warning for user-2 visible in their warnings with the photo
        """
        response = login("admin-1").post(
            f"/admin/incidents/{reported}/confirm", json={"notes": "Confirmado por vigilancia"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"

        warnings = login("user-2").get("/users/me/warnings").json()
        assert warnings["total"] == 1
        assert warnings["unviewed"] == 1
        warning = warnings["warnings"][0]
        assert warning["issued_by_name"] == "Marta Ruiz"
        assert warning["photo_url"] == SIGNED_URL
        types = [n["type"] for n in seeded.all("notifications") if n["user_id"] == "user-2"]
        assert types == ["warning_received"]

    def test_confirm_cancels_offender_reservation(self, reported, login, seeded, make_reservation, today):
        offender_reservation = make_reservation("user-2", "spot-a1", today)

        login("admin-1").post(f"/admin/incidents/{reported}/confirm", json={})

        reservation = seeded.collections["reservations"][offender_reservation]
        assert reservation["status"] == "cancelled"
        assert reservation["cancelled_by"] == "admin-1"

    def test_confirm_twice(self, reported, login):
        admin = login("admin-1")
        admin.post(f"/admin/incidents/{reported}/confirm", json={})

        response = admin.post(f"/admin/incidents/{reported}/confirm", json={})

        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_CONFIRMED"

    def test_dismiss_and_notes(self, reported, login, seeded):
        admin = login("admin-1")

        admin.put(f"/admin/incidents/{reported}/notes", json={"notes": "Revisar cámaras"})
        assert seeded.collections["incident_reports"][reported]["admin_notes"] == "Revisar cámaras"

        response = admin.post(f"/admin/incidents/{reported}/dismiss", json={"reason": "Plaza libre"})
        assert response.json()["status"] == "dismissed"
        assert seeded.all("user_warnings") == []

    def test_warnings_marked_viewed(self, reported, login):
        login("admin-1").post(f"/admin/incidents/{reported}/confirm", json={})
        client = login("user-2")

        assert client.post("/users/me/warnings/viewed").json() == {"updated": 1}
        assert client.get("/users/me/warnings").json()["unviewed"] == 0
