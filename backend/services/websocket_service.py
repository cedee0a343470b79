"""
Reserveo - Service WebSocket
Gère les connexions WebSocket pour les mises à jour en temps réel
(réservations, liste d'attente, notifications).
"""

from fastapi import WebSocket
from typing import List, Dict, Any, Optional
import asyncio
import logging

from utils.helpers import utcnow, serialize_document

# Configure logging
logger = logging.getLogger(__name__)


class WebSocketManager:
    """
    Gestionnaire de connexions WebSocket.
    Les connexions sont indexées par utilisateur pour pouvoir cibler
    les notifications personnelles.
    """

    def __init__(self):
        # user_id -> connexions actives
        self.active_connections: Dict[str, List[WebSocket]] = {}
        # Lock pour les opérations thread-safe
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: str):
        """
        Accepte et enregistre une nouvelle connexion WebSocket.

        Args:
            websocket: La connexion WebSocket à enregistrer
            user_id: Utilisateur authentifié propriétaire de la connexion
        """
        await websocket.accept()
        async with self._lock:
            self.active_connections.setdefault(user_id, []).append(websocket)

        logger.info(f"Nouvelle connexion WebSocket ({user_id}). Total: {self.get_connection_count()}")

    async def disconnect(self, websocket: WebSocket, user_id: Optional[str] = None):
        """
        Supprime une connexion WebSocket.

        Args:
            websocket: La connexion WebSocket à supprimer
            user_id: Utilisateur propriétaire (recherché si absent)
        """
        async with self._lock:
            owners = [user_id] if user_id else list(self.active_connections)
            for owner in owners:
                sockets = self.active_connections.get(owner, [])
                if websocket in sockets:
                    sockets.remove(websocket)
                if not sockets:
                    self.active_connections.pop(owner, None)

        logger.info(f"WebSocket déconnecté. Total: {self.get_connection_count()}")

    async def broadcast(self, message: Dict[str, Any]):
        """
        Diffuse un message à tous les clients connectés.

        Args:
            message: Dictionnaire du message à diffuser
        """
        if not self.active_connections:
            return

        async with self._lock:
            targets = [ws for sockets in self.active_connections.values() for ws in sockets]

        await self._send_many(targets, message)

    async def send_to_user(self, user_id: str, message: Dict[str, Any]):
        """
        Envoie un message à toutes les connexions d'un utilisateur.

        Args:
            user_id: Destinataire
            message: Message à envoyer
        """
        async with self._lock:
            targets = list(self.active_connections.get(user_id, []))

        if targets:
            await self._send_many(targets, message)

    async def broadcast_event(self, event: str, payload: Dict[str, Any]):
        """
        Diffuse un changement de données (reservation_created, waitlist_updated...).

        Args:
            event: Type d'événement
            payload: Document concerné
        """
        await self.broadcast({
            "type": event,
            "data": serialize_document(payload),
            "timestamp": utcnow().isoformat()
        })

    async def _send_many(self, targets: List[WebSocket], message: Dict[str, Any]):
        disconnected = []
        for websocket in targets:
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.error(f"Erreur d'envoi websocket: {e}")
                disconnected.append(websocket)

        # Nettoyer les clients déconnectés
        for ws in disconnected:
            await self.disconnect(ws)

    def get_connection_count(self) -> int:
        """Retourne le nombre de connexions actives."""
        return sum(len(sockets) for sockets in self.active_connections.values())

    def get_connected_users(self) -> List[str]:
        return list(self.active_connections)


# Instance singleton
_websocket_manager: Optional[WebSocketManager] = None


def get_websocket_manager() -> WebSocketManager:
    """
    Obtient l'instance singleton du WebSocketManager.

    Returns:
        WebSocketManager: Le gestionnaire WebSocket global
    """
    global _websocket_manager
    if _websocket_manager is None:
        _websocket_manager = WebSocketManager()
    return _websocket_manager
