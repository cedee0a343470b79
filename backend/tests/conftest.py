"""
Reserveo - Test Configuration & Fixtures
In-memory Firestore replacement, seeded parking data and authenticated clients.

Usage:
    pytest tests/ -v
    pytest tests/test_reservations.py -v
    pytest tests/ -v --tb=short
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch, MagicMock
from collections import defaultdict
from datetime import timedelta
import copy
import os
import sys
import uuid

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import get_settings
from database import firebase_db
from database.firebase_db import FirebaseDB
from utils.errors import ConflictError
from utils.helpers import utcnow, local_today


# ============================================================
# IN-MEMORY FIRESTORE
# ============================================================

def _matches(doc: dict, field: str, op: str, value) -> bool:
    current = doc.get(field)
    if op == "==":
        return current == value
    if op == "!=":
        return current != value
    if op == "in":
        return current in value
    if op == "array_contains":
        return isinstance(current, list) and value in current
    # Firestore range filters never match missing or null fields
    if current is None:
        return False
    if op == "<":
        return current < value
    if op == "<=":
        return current <= value
    if op == ">":
        return current > value
    if op == ">=":
        return current >= value
    raise ValueError(f"Unsupported operator: {op}")


class FakeFirebaseDB(FirebaseDB):
    """FirebaseDB backed by dictionaries, same public interface."""

    def __init__(self):
        self.collections = defaultdict(dict)

    def seed(self, collection: str, doc_id: str, data: dict) -> str:
        self.collections[collection][doc_id] = copy.deepcopy(data)
        return doc_id

    def all(self, collection: str) -> list:
        return [{**copy.deepcopy(d), "id": i} for i, d in self.collections[collection].items()]

    async def get_document(self, collection, doc_id):
        doc = self.collections[collection].get(doc_id)
        if doc is None:
            return None
        return {**copy.deepcopy(doc), "id": doc_id}

    async def create_document(self, collection, data, doc_id=None):
        doc_id = doc_id or str(uuid.uuid4())
        payload = {k: v for k, v in data.items() if k != "id"}
        payload.setdefault("created_at", utcnow())
        self.collections[collection][doc_id] = copy.deepcopy(payload)
        return doc_id

    async def set_document(self, collection, doc_id, data, merge=True):
        payload = {k: v for k, v in data.items() if k != "id"}
        payload["updated_at"] = utcnow()
        if merge and doc_id in self.collections[collection]:
            self.collections[collection][doc_id].update(copy.deepcopy(payload))
        else:
            self.collections[collection][doc_id] = copy.deepcopy(payload)
        return True

    async def update_document(self, collection, doc_id, updates):
        payload = {k: v for k, v in updates.items() if k != "id"}
        payload["updated_at"] = utcnow()
        # KeyError mirrors Firestore's NotFound on a missing document
        self.collections[collection][doc_id].update(copy.deepcopy(payload))
        return True

    async def delete_document(self, collection, doc_id):
        self.collections[collection].pop(doc_id, None)
        return True

    async def query_documents(self, collection, filters=None, order_by=None,
                              descending=False, limit=None):
        docs = [
            d for d in self.all(collection)
            if all(_matches(d, f, op, v) for f, op, v in filters or [])
        ]
        if order_by:
            docs = [d for d in docs if d.get(order_by) is not None]
            docs.sort(key=lambda d: d[order_by], reverse=descending)
        if limit:
            docs = docs[:limit]
        return docs

    async def create_reservation_transaction(self, data, replaces=None):
        active = [
            r for r in self.all(self.COLLECTION_RESERVATIONS)
            if r["reservation_date"] == data["reservation_date"] and r["status"] == "active"
        ]
        if any(r["spot_id"] == data["spot_id"] for r in active):
            raise ConflictError("Esta plaza ya está reservada para esa fecha",
                                code="SPOT_ALREADY_RESERVED")
        if any(r["user_id"] == data["user_id"] and r["id"] != replaces for r in active):
            raise ConflictError("Ya tienes una reserva para esa fecha",
                                code="USER_ALREADY_HAS_RESERVATION")

        now = utcnow()
        if replaces:
            self.collections[self.COLLECTION_RESERVATIONS][replaces].update(
                {"status": "cancelled", "cancelled_at": now, "updated_at": now}
            )
        payload = {k: v for k, v in data.items() if k != "id"}
        payload.setdefault("status", "active")
        payload["created_at"] = now
        payload["updated_at"] = now
        reservation_id = str(uuid.uuid4())
        self.collections[self.COLLECTION_RESERVATIONS][reservation_id] = payload
        return reservation_id


# ============================================================
# MOCK FIREBASE BEFORE IMPORTING APP
# ============================================================

@pytest.fixture(scope="session", autouse=True)
def mock_firebase():
    """Mock Firebase initialization at session level."""
    with patch("database.firebase_db.init_firebase") as mock_init:
        with patch("database.firebase_db.get_firestore_client") as mock_client:
            mock_init.return_value = MagicMock()
            mock_client.return_value = MagicMock()
            yield


SINGLETONS = [
    ("services.settings_service", "_settings_service"),
    ("services.websocket_service", "_websocket_manager"),
    ("services.email_service", "_email_service"),
    ("services.storage_service", "_storage_service"),
    ("services.notification_service", "_notification_service"),
    ("services.license_plate_service", "_license_plate_service"),
    ("services.reservation_service", "_reservation_service"),
    ("services.waitlist_service", "_waitlist_service"),
    ("services.checkin_service", "_checkin_service"),
    ("services.incident_service", "_incident_service"),
    ("services.user_service", "_user_service"),
    ("services.admin_service", "_admin_service"),
    ("services.reports_service", "_reports_service"),
    ("utils.scheduler", "_scheduler_instance"),
]


def _reset_singletons():
    for module_name, attribute in SINGLETONS:
        module = sys.modules.get(module_name) or __import__(module_name, fromlist=[attribute])
        setattr(module, attribute, None)


@pytest.fixture(autouse=True)
def db():
    """Fresh in-memory database for every test, services rebuilt on top of it."""
    fake = FakeFirebaseDB()
    firebase_db._db_instance = fake
    _reset_singletons()
    yield fake
    firebase_db._db_instance = None
    _reset_singletons()


@pytest.fixture(autouse=True)
def storage_bucket(db):
    """Firebase Storage bucket mock used by the storage service."""
    from services import storage_service

    bucket = MagicMock()
    bucket.blob.return_value.generate_signed_url.return_value = "https://storage.reserveo.com/signed"
    storage_service._storage_service = storage_service.StorageService(bucket=bucket)
    yield bucket
    storage_service._storage_service = None


# ============================================================
# DATES
# ============================================================

@pytest.fixture
def today():
    return local_today()


@pytest.fixture
def tomorrow(today):
    return today + timedelta(days=1)


@pytest.fixture
def yesterday(today):
    return today - timedelta(days=1)


# ============================================================
# SEEDED DATA
# ============================================================

GROUP_GENERAL = "group-general"
GROUP_FLOOR = "group-floor"
GROUP_DIRECTORS = "group-directors"
GROUP_RESERVE = "group-reserve"

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
ADMIN_ID = "admin-1"


def _group(name: str, **extra) -> dict:
    return {
        "name": name,
        "description": None,
        "capacity": 0,
        "is_active": True,
        "is_incident_reserve": False,
        "scheduled_deactivation_date": None,
        **extra,
    }


def _spot(number: str, group_id: str, **extra) -> dict:
    return {
        "spot_number": number,
        "group_id": group_id,
        "spot_type": None,
        "is_accessible": False,
        "has_charger": False,
        "is_compact": False,
        "is_active": True,
        **extra,
    }


def _profile(email: str, first_name: str, last_name: str, roles: list) -> dict:
    return {
        "email": email,
        "first_name": first_name,
        "last_name": last_name,
        "phone": None,
        "roles": roles,
        "is_blocked": False,
        "is_deactivated": False,
        "email_notifications": True,
        "checkin_reminders": True,
    }


def _plate(user_id: str, number: str) -> dict:
    return {
        "user_id": user_id,
        "plate_number": number,
        "status": "approved",
        "requested_electric": False,
        "requested_disability": False,
        "approved_electric": False,
        "approved_disability": False,
        "electric_expires_at": None,
        "disability_expires_at": None,
        "is_deleted": False,
        "created_at": utcnow(),
    }


@pytest.fixture
def seeded(db):
    """
    Groups:
    - General: A1, A2, A3 (accessible), A4 (charger)
    - Planta -1: P1 only, both users assigned
    - Dirección: D1 (director spots), user-1 assigned
    - Reserva incidencias: R1, incident reserve
    """
    db.seed(FirebaseDB.COLLECTION_GROUPS, GROUP_GENERAL, _group("General"))
    db.seed(FirebaseDB.COLLECTION_GROUPS, GROUP_FLOOR, _group("Planta -1"))
    db.seed(FirebaseDB.COLLECTION_GROUPS, GROUP_DIRECTORS, _group("Dirección"))
    db.seed(FirebaseDB.COLLECTION_GROUPS, GROUP_RESERVE,
            _group("Reserva incidencias", is_incident_reserve=True))

    db.seed(FirebaseDB.COLLECTION_SPOTS, "spot-a1", _spot("A1", GROUP_GENERAL))
    db.seed(FirebaseDB.COLLECTION_SPOTS, "spot-a2", _spot("A2", GROUP_GENERAL))
    db.seed(FirebaseDB.COLLECTION_SPOTS, "spot-a3", _spot("A3", GROUP_GENERAL, is_accessible=True))
    db.seed(FirebaseDB.COLLECTION_SPOTS, "spot-a4", _spot("A4", GROUP_GENERAL, has_charger=True))
    db.seed(FirebaseDB.COLLECTION_SPOTS, "spot-p1", _spot("P1", GROUP_FLOOR))
    db.seed(FirebaseDB.COLLECTION_SPOTS, "spot-d1", _spot("D1", GROUP_DIRECTORS, spot_type="director"))
    db.seed(FirebaseDB.COLLECTION_SPOTS, "spot-r1", _spot("R1", GROUP_RESERVE))

    db.seed(FirebaseDB.COLLECTION_PROFILES, USER_ID,
            _profile("ana@reserveo.com", "Ana", "García", ["general"]))
    db.seed(FirebaseDB.COLLECTION_PROFILES, OTHER_USER_ID,
            _profile("luis@reserveo.com", "Luis", "Pérez", ["general"]))
    db.seed(FirebaseDB.COLLECTION_PROFILES, ADMIN_ID,
            _profile("marta@reserveo.com", "Marta", "Ruiz", ["admin"]))

    db.seed(FirebaseDB.COLLECTION_PLATES, "plate-1", _plate(USER_ID, "1234ABC"))
    db.seed(FirebaseDB.COLLECTION_PLATES, "plate-2", _plate(OTHER_USER_ID, "5678DEF"))
    db.seed(FirebaseDB.COLLECTION_PLATES, "plate-3", _plate(ADMIN_ID, "9999XYZ"))

    db.seed(FirebaseDB.COLLECTION_ASSIGNMENTS, "assign-1",
            {"user_id": USER_ID, "group_id": GROUP_FLOOR})
    db.seed(FirebaseDB.COLLECTION_ASSIGNMENTS, "assign-2",
            {"user_id": OTHER_USER_ID, "group_id": GROUP_FLOOR})
    db.seed(FirebaseDB.COLLECTION_ASSIGNMENTS, "assign-3",
            {"user_id": USER_ID, "group_id": GROUP_DIRECTORS})
    return db


@pytest.fixture
def checkin_enabled(db):
    """Turn the check-in system on."""
    db.seed(FirebaseDB.COLLECTION_SETTINGS, "checkin", {"system_enabled": True})
    return db


@pytest.fixture
def make_reservation(db):
    """Insert a reservation directly, bypassing validation."""
    def _make(user_id: str, spot_id: str, day, status: str = "active", **extra) -> str:
        spot = db.collections[FirebaseDB.COLLECTION_SPOTS][spot_id]
        return db.seed(FirebaseDB.COLLECTION_RESERVATIONS, extra.pop("doc_id", str(uuid.uuid4())), {
            "user_id": user_id,
            "spot_id": spot_id,
            "group_id": spot["group_id"],
            "spot_number": spot["spot_number"],
            "reservation_date": day.isoformat(),
            "status": status,
            "source": "calendar",
            "cancelled_at": None,
            "created_at": utcnow(),
            **extra,
        })
    return _make


# ============================================================
# CLIENT FIXTURES
# ============================================================

@pytest.fixture
def client() -> TestClient:
    """Unauthenticated test client. The lifespan (Firebase, scheduler) is not run."""
    from main import app
    return TestClient(app)


@pytest.fixture
def login(db):
    """
    Return a client authenticated as the given profile.
    The profile is re-read on every request so admin changes apply immediately.
    """
    from main import app
    from security.firebase_auth import get_current_user, profile_from_document

    def _login(uid: str) -> TestClient:
        async def current_user():
            profile = db.collections[FirebaseDB.COLLECTION_PROFILES][uid]
            return profile_from_document(uid, profile)

        app.dependency_overrides[get_current_user] = current_user
        return TestClient(app)

    yield _login
    app.dependency_overrides.clear()


@pytest.fixture
def user_client(seeded, login) -> TestClient:
    return login(USER_ID)


@pytest.fixture
def admin_client(seeded, login) -> TestClient:
    return login(ADMIN_ID)


@pytest.fixture
def api_key_headers() -> dict:
    """Headers with the valid cron API key."""
    return {"X-API-Key": get_settings().cron_api_key, "X-Job-Source": "pytest"}


@pytest.fixture
def invalid_api_key_headers() -> dict:
    return {"X-API-Key": "invalid-key-12345"}
