"""
Reserveo - Database Package
Firebase Firestore database integration.
"""

from database.firebase_db import (
    init_firebase,
    get_firestore_client,
    FirebaseDB,
    get_db,
)

__all__ = [
    "init_firebase",
    "get_firestore_client",
    "FirebaseDB",
    "get_db",
]
