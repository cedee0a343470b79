"""
Reserveo - Notification Tests
In-app notifications: listing, unread count and read state.

Run: pytest tests/test_notifications.py -v
"""

import pytest
from fastapi.testclient import TestClient
from datetime import timedelta

from database.firebase_db import FirebaseDB
from utils.helpers import utcnow


def _notification(user_id: str, title: str, minutes_ago: int, is_read: bool = False) -> dict:
    return {
        "user_id": user_id,
        "type": "reservation_confirmed",
        "category": "reservation",
        "priority": "medium",
        "title": title,
        "message": title,
        "data": {},
        "is_read": is_read,
        "read_at": None,
        "created_at": utcnow() - timedelta(minutes=minutes_ago),
    }


@pytest.fixture
def inbox(seeded):
    seeded.seed(FirebaseDB.COLLECTION_NOTIFICATIONS, "n-old", _notification("user-1", "Antigua", 60))
    seeded.seed(FirebaseDB.COLLECTION_NOTIFICATIONS, "n-new", _notification("user-1", "Nueva", 5))
    seeded.seed(FirebaseDB.COLLECTION_NOTIFICATIONS, "n-read",
                _notification("user-1", "Leída", 30, is_read=True))
    seeded.seed(FirebaseDB.COLLECTION_NOTIFICATIONS, "n-other", _notification("user-2", "Otro", 1))
    return seeded


class TestNotifications:
    """Tests for /notifications."""

    def test_list_most_recent_first(self, inbox, user_client: TestClient):
        """
        Test: GET /notifications
        Expected: Only own notifications, newest first
        """
        response = user_client.get("/notifications")

        assert response.status_code == 200
        assert [n["id"] for n in response.json()] == ["n-new", "n-read", "n-old"]

    def test_list_unread_only(self, inbox, user_client: TestClient):
        response = user_client.get("/notifications", params={"unread_only": True})

        assert [n["id"] for n in response.json()] == ["n-new", "n-old"]

    def test_unread_count(self, inbox, user_client: TestClient):
        response = user_client.get("/notifications/unread-count")

        assert response.status_code == 200
        assert response.json() == {"unread": 2}

    def test_mark_as_read(self, inbox, user_client: TestClient):
        response = user_client.post("/notifications/n-new/read")

        assert response.status_code == 200
        assert response.json()["is_read"] is True
        assert inbox.collections["notifications"]["n-new"]["read_at"] is not None

    def test_mark_others_notification(self, inbox, user_client: TestClient):
        response = user_client.post("/notifications/n-other/read")

        assert response.status_code == 403
        assert inbox.collections["notifications"]["n-other"]["is_read"] is False

    def test_mark_unknown_notification(self, inbox, user_client: TestClient):
        response = user_client.post("/notifications/missing/read")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_mark_all_as_read(self, inbox, user_client: TestClient):
        response = user_client.post("/notifications/read-all")

        assert response.status_code == 200
        assert response.json() == {"updated": 2}
        assert user_client.get("/notifications/unread-count").json() == {"unread": 0}
        # Other users are untouched
        assert inbox.collections["notifications"]["n-other"]["is_read"] is False


class TestNotificationDelivery:
    """Tests for the notify side effects."""

    def test_email_skipped_without_api_key(self, user_client: TestClient, seeded, tomorrow):
        """
        Test: Booking sends a confirmation notification
        Expected: Stored with its category, no e-mail sent while Resend is not configured
        """
        user_client.post("/reservations", json={
            "spot_id": "spot-a1",
            "reservation_date": tomorrow.isoformat(),
        })

        notifications = seeded.all("notifications")
        assert len(notifications) == 1
        assert notifications[0]["category"] == "reservation"
        assert "email_sent" not in notifications[0]
