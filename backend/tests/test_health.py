"""
Reserveo - Health & Info Endpoint Tests
Tests for root, health, info and WebSocket status endpoints.

Run: pytest tests/test_health.py -v
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect
from unittest.mock import patch

from models.user import TokenPayload


class TestHealthEndpoints:
    """Tests for health and info endpoints."""

    # ============================================================
    # TEST: GET / (Root Endpoint)
    # ============================================================

    def test_root_endpoint_returns_200(self, client: TestClient):
        """
        Test: GET / returns 200 OK
        Expected: Name, version and WebSocket path
        """
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Reserveo"
        assert data["status"] == "operational"
        assert data["websocket"] == "/ws/reservations"
        assert isinstance(data["version"], str)

    # ============================================================
    # TEST: GET /health
    # ============================================================

    def test_health_reports_services(self, client: TestClient):
        """
        Test: GET /health without lifespan
        Expected: healthy, scheduler stopped, no WebSocket connections
        """
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"]["scheduler"] == "stopped"
        assert data["services"]["websocket_connections"] == 0
        assert "hit_rate" in data["services"]["settings_cache"]

    def test_api_info_lists_endpoints(self, client: TestClient):
        response = client.get("/api/v1/info")

        assert response.status_code == 200
        endpoints = response.json()["endpoints"]
        assert endpoints["reservations"] == "/reservations"
        assert endpoints["jobs"] == "/jobs"

    # ============================================================
    # TEST: OpenAPI Documentation
    # ============================================================

    def test_openapi_schema_available(self, client: TestClient):
        response = client.get("/openapi.json")

        assert response.status_code == 200
        paths = response.json()["paths"]
        assert "/reservations" in paths
        assert "/admin/reports/reservations/stats" in paths


class TestAuthentication:
    """Tests for the Bearer token requirement."""

    def test_missing_token_returns_401(self, client: TestClient):
        """
        Test: Protected endpoint without Authorization header
        Expected: 401
        """
        response = client.get("/users/me")

        assert response.status_code == 401

    def test_non_admin_cannot_reach_admin_routes(self, user_client: TestClient):
        response = user_client.get("/admin/users")

        assert response.status_code == 403
        assert response.json()["detail"] == "Admin privileges required"

    def test_first_sign_in_creates_profile(self, client: TestClient, db):
        """
        Test: Valid token for an unknown uid
        Expected: Profile created with the general role
        """
        token = TokenPayload(uid="new-user", email="nuevo@reserveo.com", name="Nuevo Usuario")

        with patch("security.firebase_auth.decode_token", return_value=token):
            response = client.get("/users/me", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 200
        data = response.json()
        assert data["uid"] == "new-user"
        assert data["roles"] == ["general"]
        assert data["first_name"] == "Nuevo"
        assert db.collections["profiles"]["new-user"]["email"] == "nuevo@reserveo.com"

    def test_deactivated_account_is_refused(self, client: TestClient, seeded):
        seeded.collections["profiles"]["user-1"]["is_deactivated"] = True
        token = TokenPayload(uid="user-1", email="ana@reserveo.com")

        with patch("security.firebase_auth.decode_token", return_value=token):
            response = client.get("/users/me", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 403


class TestWebSocket:
    """Tests for the real-time channel."""

    def test_websocket_status(self, client: TestClient):
        response = client.get("/ws/status")

        assert response.status_code == 200
        assert response.json()["active_connections"] == 0

    def test_websocket_requires_token(self, client: TestClient):
        """
        Test: Connect without a token
        Expected: Closed with policy violation (1008)
        """
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/reservations"):
                pass

        assert exc_info.value.code == 1008

    def test_websocket_ping_pong(self, client: TestClient):
        token = TokenPayload(uid="user-1")

        with patch("routers.websocket.decode_token", return_value=token):
            with client.websocket_connect("/ws/reservations?token=abc") as websocket:
                connected = websocket.receive_json()
                websocket.send_json({"type": "ping"})
                pong = websocket.receive_json()

        assert connected["type"] == "connected"
        assert connected["user_id"] == "user-1"
        assert pong["type"] == "pong"
