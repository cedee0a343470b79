"""
Reserveo - Firebase Database Module
Gestion des opérations Firebase Firestore pour les réservations de parking.
"""

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud.firestore_v1 import FieldFilter
from typing import Optional, List, Dict, Any, Sequence, Tuple
import logging
import uuid

from config import get_settings
from utils.errors import ConflictError
from utils.helpers import utcnow

# Configure logging
logger = logging.getLogger(__name__)

# Global Firebase app instance
_firebase_app: Optional[firebase_admin.App] = None
_firestore_client = None

# (champ, opérateur, valeur)
Filter = Tuple[str, str, Any]


def init_firebase() -> firebase_admin.App:
    """
    Initialise Firebase Admin SDK.
    Appelé une seule fois au démarrage de l'application.
    """
    global _firebase_app, _firestore_client

    if _firebase_app is not None:
        logger.info("Firebase déjà initialisé")
        return _firebase_app

    try:
        settings = get_settings()
        cred = credentials.Certificate(settings.get_firebase_credentials())

        options = {}
        if settings.firebase_storage_bucket:
            options["storageBucket"] = settings.firebase_storage_bucket

        _firebase_app = firebase_admin.initialize_app(cred, options or None)
        _firestore_client = firestore.client()
        logger.info("Firebase initialisé avec succès")

        return _firebase_app

    except Exception as e:
        logger.error(f"Échec de l'initialisation Firebase: {e}")
        raise


def get_firestore_client():
    """Obtient l'instance du client Firestore."""
    global _firestore_client
    if _firestore_client is None:
        init_firebase()
    return _firestore_client


class FirebaseDB:
    """
    Gestionnaire de base de données Firebase Firestore.
    Fournit des opérations CRUD génériques sur les collections de Reserveo.
    """

    COLLECTION_PROFILES = "profiles"
    COLLECTION_GROUPS = "parking_groups"
    COLLECTION_SPOTS = "parking_spots"
    COLLECTION_ASSIGNMENTS = "user_group_assignments"
    COLLECTION_RESERVATIONS = "reservations"
    COLLECTION_BLOCKED_DATES = "blocked_dates"
    COLLECTION_SETTINGS = "settings"
    COLLECTION_GROUP_CHECKIN_CONFIG = "parking_group_checkin_config"
    COLLECTION_CHECKINS = "reservation_checkins"
    COLLECTION_INFRACTIONS = "checkin_infractions"
    COLLECTION_CHECKIN_NOTIFICATIONS = "checkin_notifications"
    COLLECTION_USER_BLOCKS = "user_blocks"
    COLLECTION_WARNINGS = "user_warnings"
    COLLECTION_INCIDENTS = "incident_reports"
    COLLECTION_PLATES = "license_plates"
    COLLECTION_NOTIFICATIONS = "notifications"
    COLLECTION_WAITLIST_ENTRIES = "waitlist_entries"
    COLLECTION_WAITLIST_OFFERS = "waitlist_offers"
    COLLECTION_WAITLIST_LOGS = "waitlist_logs"
    COLLECTION_WAITLIST_PENALTIES = "waitlist_penalties"
    COLLECTION_CANCELLATION_LOG = "reservation_cancellation_log"
    COLLECTION_CRON_LOGS = "cron_logs"

    def __init__(self):
        self.db = get_firestore_client()

    @staticmethod
    def _with_id(doc) -> Dict[str, Any]:
        data = doc.to_dict() or {}
        data["id"] = doc.id
        return data

    # ==================== DOCUMENTS ====================

    async def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Récupère un document par son ID (avec le champ 'id')."""
        try:
            doc = self.db.collection(collection).document(doc_id).get()
            if doc.exists:
                return self._with_id(doc)
            return None
        except Exception as e:
            logger.error(f"Erreur récupération {collection}/{doc_id}: {e}")
            raise

    async def create_document(
        self,
        collection: str,
        data: Dict[str, Any],
        doc_id: Optional[str] = None
    ) -> str:
        """Crée un document et retourne son ID."""
        try:
            doc_id = doc_id or str(uuid.uuid4())
            payload = {k: v for k, v in data.items() if k != "id"}
            payload.setdefault("created_at", utcnow())
            self.db.collection(collection).document(doc_id).set(payload)
            logger.debug(f"Document {collection}/{doc_id} créé")
            return doc_id
        except Exception as e:
            logger.error(f"Erreur création document {collection}: {e}")
            raise

    async def set_document(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = True
    ) -> bool:
        """Crée ou remplace (fusionne) un document."""
        try:
            payload = {k: v for k, v in data.items() if k != "id"}
            payload["updated_at"] = utcnow()
            self.db.collection(collection).document(doc_id).set(payload, merge=merge)
            return True
        except Exception as e:
            logger.error(f"Erreur écriture {collection}/{doc_id}: {e}")
            raise

    async def update_document(
        self,
        collection: str,
        doc_id: str,
        updates: Dict[str, Any]
    ) -> bool:
        """Met à jour les champs d'un document existant."""
        try:
            payload = {k: v for k, v in updates.items() if k != "id"}
            payload["updated_at"] = utcnow()
            self.db.collection(collection).document(doc_id).update(payload)
            return True
        except Exception as e:
            logger.error(f"Erreur mise à jour {collection}/{doc_id}: {e}")
            raise

    async def delete_document(self, collection: str, doc_id: str) -> bool:
        """Supprime un document."""
        try:
            self.db.collection(collection).document(doc_id).delete()
            return True
        except Exception as e:
            logger.error(f"Erreur suppression {collection}/{doc_id}: {e}")
            raise

    async def query_documents(
        self,
        collection: str,
        filters: Optional[Sequence[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Recherche des documents.

        Args:
            collection: Nom de la collection
            filters: Liste de tuples (champ, opérateur, valeur)
            order_by: Champ de tri
            descending: Tri décroissant
            limit: Nombre maximum de résultats
        """
        try:
            query = self.db.collection(collection)
            for field, op, value in filters or []:
                query = query.where(filter=FieldFilter(field, op, value))

            if order_by:
                direction = (
                    firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
                )
                query = query.order_by(order_by, direction=direction)

            if limit:
                query = query.limit(limit)

            return [self._with_id(doc) for doc in query.stream()]
        except Exception as e:
            logger.error(f"Erreur requête {collection}: {e}")
            raise

    # ==================== RÉSERVATIONS ====================

    async def create_reservation_transaction(
        self,
        data: Dict[str, Any],
        replaces: Optional[str] = None
    ) -> str:
        """
        Crée une réservation de manière atomique.
        Utilise une transaction Firestore pour éviter les doubles réservations:
        la place ne doit pas être déjà réservée ce jour-là et l'utilisateur
        ne doit pas déjà avoir une réservation active à cette date.

        Args:
            replaces: ID d'une réservation de l'utilisateur annulée dans la
                même transaction (réassignation). Rien n'est modifié si la
                nouvelle réservation échoue.
        """
        transaction = self.db.transaction()
        reservations = self.db.collection(self.COLLECTION_RESERVATIONS)
        reservation_id = str(uuid.uuid4())
        new_ref = reservations.document(reservation_id)
        replaced_ref = reservations.document(replaces) if replaces else None

        spot_query = reservations.where(
            filter=FieldFilter("spot_id", "==", data["spot_id"])
        ).where(
            filter=FieldFilter("reservation_date", "==", data["reservation_date"])
        ).where(
            filter=FieldFilter("status", "==", "active")
        )
        user_query = reservations.where(
            filter=FieldFilter("user_id", "==", data["user_id"])
        ).where(
            filter=FieldFilter("reservation_date", "==", data["reservation_date"])
        ).where(
            filter=FieldFilter("status", "==", "active")
        )

        @firestore.transactional
        def reserve_in_transaction(transaction) -> str:
            if any(True for _ in spot_query.stream(transaction=transaction)):
                raise ConflictError(
                    "Esta plaza ya está reservada para esa fecha",
                    code="SPOT_ALREADY_RESERVED"
                )
            if any(doc.id != replaces for doc in user_query.stream(transaction=transaction)):
                raise ConflictError(
                    "Ya tienes una reserva para esa fecha",
                    code="USER_ALREADY_HAS_RESERVATION"
                )

            now = utcnow()
            payload = {k: v for k, v in data.items() if k != "id"}
            payload.setdefault("status", "active")
            payload["created_at"] = now
            payload["updated_at"] = now
            if replaced_ref is not None:
                transaction.update(replaced_ref, {
                    "status": "cancelled",
                    "cancelled_at": now,
                    "updated_at": now,
                })
            transaction.set(new_ref, payload)
            return reservation_id

        try:
            result = reserve_in_transaction(transaction)
            logger.info(
                f"Réservation {result} créée: place {data['spot_id']} "
                f"le {data['reservation_date']}"
            )
            return result
        except ConflictError:
            raise
        except Exception as e:
            logger.error(f"Échec de la réservation: {e}")
            raise


# Instance singleton
_db_instance: Optional[FirebaseDB] = None


def get_db() -> FirebaseDB:
    """Obtient l'instance singleton de FirebaseDB."""
    global _db_instance
    if _db_instance is None:
        _db_instance = FirebaseDB()
    return _db_instance
