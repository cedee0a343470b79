"""
Reserveo - Admin Back-office Tests
Users, groups, spots, group access, blocked dates and settings.

Run: pytest tests/test_admin.py -v
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch, AsyncMock
from datetime import timedelta

from database.firebase_db import FirebaseDB
from utils.helpers import utcnow


@pytest.fixture
def floor_booking(seeded, make_reservation, tomorrow):
    """user-1 holds P1 (Planta -1) tomorrow."""
    return make_reservation("user-1", "spot-p1", tomorrow, doc_id="res-p1")


# ============================================================
# USERS
# ============================================================

class TestUsers:
    """Tests for /admin/users."""

    def test_list_users(self, admin_client: TestClient):
        response = admin_client.get("/admin/users")

        assert response.status_code == 200
        users = response.json()
        assert [u["id"] for u in users] == ["user-1", "user-2", "admin-1"]
        assert users[0]["license_plates"][0]["plate_number"] == "1234ABC"
        assert sorted(users[0]["group_ids"]) == ["group-directors", "group-floor"]

    def test_block_user_cancels_future_reservations(self, floor_booking, admin_client: TestClient, seeded):
        """
        Test: Block user-1 holding a reservation tomorrow
        Expected: Profile blocked, reservation cancelled with the user_blocked trigger
        """
        response = admin_client.post("/admin/users/user-1/block", json={"reason": "Uso indebido"})

        assert response.status_code == 200
        assert response.json()["cancelled_reservations"] == 1
        assert seeded.collections["profiles"]["user-1"]["is_blocked"] is True
        assert seeded.collections["reservations"][floor_booking]["status"] == "cancelled"
        assert seeded.all("reservation_cancellation_log")[0]["triggered_by"] == "user_blocked"

    def test_blocked_user_sees_reason(self, seeded, admin_client: TestClient, login):
        admin_client.post("/admin/users/user-1/block", json={"reason": "Uso indebido"})

        blocks = login("user-1").get("/users/me/blocks").json()

        assert blocks["is_blocked_by_admin"] is True
        assert blocks["blocked_reason"] == "Uso indebido"

    def test_unblock_user(self, admin_client: TestClient, seeded):
        admin_client.post("/admin/users/user-1/block", json={"reason": "Uso indebido"})

        response = admin_client.post("/admin/users/user-1/unblock")

        assert response.json()["is_blocked"] is False
        assert seeded.collections["profiles"]["user-1"]["blocked_reason"] is None

    def test_cannot_block_self(self, admin_client: TestClient):
        response = admin_client.post("/admin/users/admin-1/block", json={"reason": "Prueba"})

        assert response.status_code == 400
        assert response.json()["code"] == "SELF_ACTION"

    def test_deactivate_releases_waitlist(self, floor_booking, admin_client: TestClient, seeded, tomorrow):
        seeded.seed(FirebaseDB.COLLECTION_WAITLIST_ENTRIES, "entry-1", {
            "user_id": "user-1", "group_id": "group-directors",
            "reservation_date": (tomorrow + timedelta(days=1)).isoformat(),
            "status": "active", "created_at": utcnow(),
        })

        response = admin_client.post("/admin/users/user-1/deactivate")

        data = response.json()
        assert data["cancelled_reservations"] == 1
        assert data["cancelled_waitlist_entries"] == 1
        assert seeded.collections["profiles"]["user-1"]["is_deactivated"] is True

    def test_set_roles(self, admin_client: TestClient, seeded):
        response = admin_client.put("/admin/users/user-2/roles", json={"roles": ["general", "director"]})

        assert response.status_code == 200
        assert seeded.collections["profiles"]["user-2"]["roles"] == ["director", "general"]

    def test_admin_cannot_drop_own_admin_role(self, admin_client: TestClient):
        response = admin_client.put("/admin/users/admin-1/roles", json={"roles": ["general"]})

        assert response.json()["code"] == "SELF_ACTION"

    def test_unknown_role_rejected(self, admin_client: TestClient):
        response = admin_client.put("/admin/users/user-2/roles", json={"roles": ["superuser"]})

        assert response.status_code == 422


class TestPermanentDeletion:
    """Tests for POST /admin/users/{id}/delete."""

    def test_delete_with_valid_password(self, floor_booking, admin_client: TestClient, seeded):
        """
        Test: Delete user-1 after the admin confirms their password
        Expected: Profile, plates and assignments removed, Firebase account deleted
        """
        with patch("security.firebase_auth.verify_admin_password", new=AsyncMock(return_value=True)), \
                patch("services.admin_service.auth.delete_user") as delete_user:
            response = admin_client.post("/admin/users/user-1/delete", json={"password": "secret"})

        assert response.status_code == 200
        assert response.json()["deleted"] is True
        assert response.json()["auth_deleted"] is True
        delete_user.assert_called_once_with("user-1")
        assert "user-1" not in seeded.collections["profiles"]
        assert "plate-1" not in seeded.collections["license_plates"]
        assert all(a["user_id"] != "user-1" for a in seeded.all("user_group_assignments"))
        assert seeded.collections["reservations"][floor_booking]["status"] == "cancelled"

    def test_auth_failure_after_data_removal(self, admin_client: TestClient, seeded):
        """
        Test: Firebase Auth fails once the Firestore data is already removed
        Expected: 200 with auth_deleted False, profile stays removed
        """
        with patch("security.firebase_auth.verify_admin_password", new=AsyncMock(return_value=True)), \
                patch("services.admin_service.auth.delete_user",
                      side_effect=RuntimeError("Firebase unavailable")):
            response = admin_client.post("/admin/users/user-1/delete", json={"password": "secret"})

        assert response.status_code == 200
        data = response.json()
        assert data["deleted"] is True
        assert data["auth_deleted"] is False
        assert "user-1" not in seeded.collections["profiles"]

    def test_delete_with_wrong_password(self, admin_client: TestClient, seeded):
        with patch("security.firebase_auth.verify_admin_password", new=AsyncMock(return_value=False)), \
                patch("services.admin_service.auth.delete_user") as delete_user:
            response = admin_client.post("/admin/users/user-1/delete", json={"password": "wrong"})

        assert response.status_code == 403
        assert response.json()["code"] == "INVALID_PASSWORD"
        delete_user.assert_not_called()
        assert "user-1" in seeded.collections["profiles"]


# ============================================================
# GROUPS
# ============================================================

class TestGroups:
    """Tests for /admin/groups."""

    def test_list_groups_with_counts(self, admin_client: TestClient):
        response = admin_client.get("/admin/groups")

        groups = {g["name"]: g for g in response.json()}
        assert groups["General"]["spot_count"] == 4
        assert groups["Planta -1"]["active_spot_count"] == 1

    def test_create_group(self, admin_client: TestClient):
        response = admin_client.post("/admin/groups", json={"name": "Visitas", "capacity": 3})

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "Visitas"
        assert data["is_active"] is True
        assert data["created_by"] == "admin-1"

    def test_duplicate_group_name(self, admin_client: TestClient):
        response = admin_client.post("/admin/groups", json={"name": "General"})

        assert response.status_code == 409
        assert response.json()["code"] == "GROUP_NAME_TAKEN"

    def test_general_group_cannot_be_deactivated(self, admin_client: TestClient):
        response = admin_client.post("/admin/groups/group-general/deactivate", json={})

        assert response.status_code == 400
        assert response.json()["code"] == "GENERAL_GROUP"

    def test_deactivate_group_cancels_reservations(self, floor_booking, admin_client: TestClient, seeded):
        response = admin_client.post("/admin/groups/group-floor/deactivate", json={"reason": "Obras"})

        assert response.status_code == 200
        assert response.json()["cancelled_reservations"] == 1
        assert seeded.collections["parking_groups"]["group-floor"]["is_active"] is False
        assert seeded.all("reservation_cancellation_log")[0]["triggered_by"] == "group_deactivated"

    def test_toggle_reactivates(self, admin_client: TestClient, seeded):
        admin_client.post("/admin/groups/group-floor/toggle")

        response = admin_client.post("/admin/groups/group-floor/toggle")

        assert response.json()["is_active"] is True

    def test_schedule_deactivation_in_past(self, admin_client: TestClient, today):
        response = admin_client.post("/admin/groups/group-floor/schedule-deactivation", json={
            "deactivation_date": today.isoformat(),
        })

        assert response.json()["code"] == "INVALID_DATE"

    def test_scheduled_deactivation_applied_by_job(self, admin_client: TestClient, seeded, client,
                                                   api_key_headers, today, tomorrow):
        admin_client.post("/admin/groups/group-floor/schedule-deactivation", json={
            "deactivation_date": tomorrow.isoformat(),
            "reason": "Cierre",
        })
        assert seeded.collections["parking_groups"]["group-floor"]["scheduled_deactivation_date"] == tomorrow.isoformat()

        seeded.collections["parking_groups"]["group-floor"]["scheduled_deactivation_date"] = today.isoformat()
        response = client.post("/jobs/apply_group_deactivations", headers=api_key_headers)

        assert response.json()["records_affected"] == 1
        group = seeded.collections["parking_groups"]["group-floor"]
        assert group["is_active"] is False
        assert group["scheduled_deactivation_date"] is None

    def test_upload_floor_plan(self, admin_client: TestClient, storage_bucket):
        response = admin_client.post(
            "/admin/groups/group-floor/floor-plan",
            files={"file": ("plano.png", b"\x89PNG plan", "image/png")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["floor_plan_url"] == "floor-plans/group-floor.png"
        assert data["floor_plan_signed_url"] == "https://storage.reserveo.com/signed"
        storage_bucket.blob.assert_any_call("floor-plans/group-floor.png")

    def test_floor_plan_type_checked(self, admin_client: TestClient):
        response = admin_client.post(
            "/admin/groups/group-floor/floor-plan",
            files={"file": ("plano.pdf", b"%PDF", "application/pdf")},
        )

        assert response.json()["code"] == "INVALID_FILE_TYPE"

    def test_group_checkin_config(self, admin_client: TestClient):
        response = admin_client.put("/admin/groups/group-floor/checkin-config", json={
            "use_custom_config": True,
            "custom_checkin_window_hours": 4,
        })

        assert response.status_code == 200
        assert response.json()["custom_checkin_window_hours"] == 4
        assert admin_client.get("/admin/groups/group-floor/checkin-config").json()["use_custom_config"] is True


# ============================================================
# SPOTS
# ============================================================

class TestSpots:
    """Tests for /admin/spots."""

    def test_create_spot_normalizes_number(self, admin_client: TestClient):
        response = admin_client.post("/admin/spots", json={
            "spot_number": " a5 ",
            "group_id": "group-general",
            "is_compact": True,
        })

        assert response.status_code == 201
        assert response.json()["spot_number"] == "A5"

    def test_duplicate_spot_number(self, admin_client: TestClient):
        response = admin_client.post("/admin/spots", json={"spot_number": "a1", "group_id": "group-general"})

        assert response.status_code == 409
        assert response.json()["code"] == "SPOT_NUMBER_TAKEN"

    def test_spot_type_must_be_role(self, admin_client: TestClient):
        response = admin_client.post("/admin/spots", json={
            "spot_number": "Z1",
            "group_id": "group-general",
            "spot_type": "vip",
        })

        assert response.status_code == 422

    def test_toggle_spot_cancels_future_reservations(self, floor_booking, admin_client: TestClient, seeded):
        response = admin_client.post("/admin/spots/spot-p1/toggle")

        data = response.json()
        assert data["is_active"] is False
        assert data["cancelled_reservations"] == 1
        assert seeded.collections["reservations"][floor_booking]["status"] == "cancelled"

    def test_update_positions(self, admin_client: TestClient, seeded):
        response = admin_client.put("/admin/spots/positions", json={"positions": [
            {"spot_id": "spot-a1", "position_x": 10.5, "position_y": 20},
            {"spot_id": "spot-a2", "position_x": 30, "position_y": 20},
        ]})

        assert response.json() == {"updated": 2}
        assert seeded.collections["parking_spots"]["spot-a1"]["position_x"] == 10.5

    def test_positions_unknown_spot(self, admin_client: TestClient, seeded):
        response = admin_client.put("/admin/spots/positions", json={"positions": [
            {"spot_id": "spot-a1", "position_x": 1, "position_y": 1},
            {"spot_id": "missing", "position_x": 1, "position_y": 1},
        ]})

        assert response.status_code == 404
        # Nothing is written when one spot is unknown
        assert "position_x" not in seeded.collections["parking_spots"]["spot-a1"]

    def test_list_spots_by_group(self, admin_client: TestClient):
        response = admin_client.get("/admin/spots", params={"group_id": "group-general"})

        assert [s["spot_number"] for s in response.json()] == ["A1", "A2", "A3", "A4"]


# ============================================================
# GROUP ACCESS
# ============================================================

class TestAssignments:
    """Tests for /admin/assignments."""

    def test_add_assignment_notifies_user(self, admin_client: TestClient, seeded):
        response = admin_client.post("/admin/assignments", json={
            "user_id": "user-2",
            "group_id": "group-directors",
        })

        assert response.status_code == 201
        assert [n["type"] for n in seeded.all("notifications")] == ["group_access_added"]

    def test_already_assigned(self, admin_client: TestClient):
        response = admin_client.post("/admin/assignments", json={
            "user_id": "user-1",
            "group_id": "group-floor",
        })

        assert response.status_code == 409
        assert response.json()["code"] == "ALREADY_ASSIGNED"

    def test_remove_assignment_cancels_group_reservations(self, floor_booking, admin_client: TestClient, seeded):
        response = admin_client.delete("/admin/assignments", params={
            "user_id": "user-1",
            "group_id": "group-floor",
        })

        assert response.status_code == 200
        assert response.json()["cancelled_reservations"] == 1
        assert seeded.collections["reservations"][floor_booking]["status"] == "cancelled"
        assert "assign-1" not in seeded.collections["user_group_assignments"]

    def test_remove_missing_assignment(self, admin_client: TestClient):
        response = admin_client.delete("/admin/assignments", params={
            "user_id": "user-2",
            "group_id": "group-directors",
        })

        assert response.status_code == 404


# ============================================================
# BLOCKED DATES
# ============================================================

class TestBlockedDates:
    """Tests for /admin/blocked-dates."""

    def test_block_date_cancels_reservations(self, floor_booking, admin_client: TestClient, seeded, tomorrow):
        response = admin_client.post("/admin/blocked-dates", json={
            "blocked_date": tomorrow.isoformat(),
            "reason": "Festivo",
        })

        assert response.status_code == 201
        assert response.json()["cancelled_reservations"] == 1
        assert seeded.all("reservation_cancellation_log")[0]["triggered_by"] == "blocked_date"

    def test_group_block_leaves_other_groups(self, floor_booking, make_reservation, admin_client: TestClient,
                                             seeded, tomorrow):
        other = make_reservation("user-2", "spot-a1", tomorrow)

        response = admin_client.post("/admin/blocked-dates", json={
            "blocked_date": tomorrow.isoformat(),
            "group_id": "group-floor",
        })

        assert response.json()["cancelled_reservations"] == 1
        assert seeded.collections["reservations"][other]["status"] == "active"

    def test_block_twice(self, admin_client: TestClient, tomorrow):
        payload = {"blocked_date": tomorrow.isoformat()}
        admin_client.post("/admin/blocked-dates", json=payload)

        response = admin_client.post("/admin/blocked-dates", json=payload)

        assert response.status_code == 409
        assert response.json()["code"] == "DATE_ALREADY_BLOCKED"

    def test_unblock(self, admin_client: TestClient, tomorrow):
        block_id = admin_client.post("/admin/blocked-dates", json={
            "blocked_date": tomorrow.isoformat(),
        }).json()["id"]

        response = admin_client.delete(f"/admin/blocked-dates/{block_id}")

        assert response.status_code == 200
        assert admin_client.get("/admin/blocked-dates").json() == []


# ============================================================
# SETTINGS
# ============================================================

class TestSettings:
    """Tests for /admin/settings."""

    def test_defaults(self, admin_client: TestClient):
        response = admin_client.get("/admin/settings/reservation")

        data = response.json()
        assert data["advance_reservation_days"] == 7
        assert data["daily_refresh_hour"] == 10
        assert data["waitlist_enabled"] is True

    def test_update_invalidates_cache(self, admin_client: TestClient, today):
        """
        Test: Change advance_reservation_days after it has been read
        Expected: New value visible immediately in the reservable range
        """
        admin_client.get("/admin/settings/reservation")

        response = admin_client.put("/admin/settings/reservation", json={
            "advance_reservation_days": 14,
            "daily_refresh_hour": 0,
        })
        assert response.json()["advance_reservation_days"] == 14

        date_range = admin_client.get("/reservations/date-range").json()
        assert date_range["max_date"] == (today + timedelta(days=14)).isoformat()

    def test_invalid_setting_value(self, admin_client: TestClient):
        response = admin_client.put("/admin/settings/checkin", json={"grace_period_minutes": -5})

        assert response.status_code == 422

    def test_checkin_settings_update(self, admin_client: TestClient):
        response = admin_client.put("/admin/settings/checkin", json={"system_enabled": True})

        assert response.json()["system_enabled"] is True
        assert response.json()["default_checkin_window_hours"] == 12

    def test_cache_stats(self, admin_client: TestClient):
        admin_client.get("/admin/settings/checkin")
        admin_client.get("/admin/settings/checkin")

        stats = admin_client.get("/admin/settings/cache-stats").json()

        assert stats["hits"] >= 1
        assert stats["entries"] >= 1
        assert 0 < stats["hit_rate"] <= 1
