"""
Reserveo - WebSocket Router
Gère les connexions WebSocket en temps réel pour les changements de réservations,
de liste d'attente et les notifications.
Les clients se connectent sur /ws/reservations?token=<Firebase ID token>.
"""

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, Query, status
from typing import Optional
import logging
import json

from security.firebase_auth import decode_token
from services.websocket_service import get_websocket_manager
from utils.helpers import utcnow

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    tags=["WebSocket"]
)


@router.websocket("/ws/reservations")
async def reservations_websocket(
    websocket: WebSocket,
    token: Optional[str] = Query(None)
):
    """
    Point de terminaison WebSocket pour les mises à jour en temps réel.

    Événements envoyés:
    - reservation_created / reservation_updated / reservation_cancelled
    - waitlist_updated / waitlist_offer
    - notification (destinée à l'utilisateur connecté)

    Format:
    {
        "type": "reservation_created",
        "data": {...},
        "timestamp": "..."
    }
    """
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    try:
        user_id = decode_token(token).uid
    except HTTPException:
        logger.warning("Connexion WebSocket refusée: token invalide")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    manager = get_websocket_manager()
    await manager.connect(websocket, user_id)

    try:
        await websocket.send_json({
            "type": "connected",
            "message": "Conexión establecida con Reserveo",
            "user_id": user_id,
            "timestamp": utcnow().isoformat()
        })

        # Maintenir la connexion et gérer les messages
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({
                    "type": "error",
                    "message": "Format JSON invalide"
                })
                continue
            await handle_client_message(websocket, message)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"Erreur WebSocket ({user_id}): {e}")
    finally:
        await manager.disconnect(websocket, user_id)


async def handle_client_message(websocket: WebSocket, message: dict):
    """
    Gère les messages entrants des clients WebSocket.

    Commandes supportées:
    - ping: Maintien de connexion
    """
    msg_type = message.get("type", "unknown")

    if msg_type == "ping":
        await websocket.send_json({
            "type": "pong",
            "timestamp": utcnow().isoformat()
        })
    else:
        await websocket.send_json({
            "type": "error",
            "message": f"Type de message inconnu: {msg_type}"
        })


@router.get(
    "/ws/status",
    tags=["WebSocket"],
    summary="État des connexions WebSocket",
    description="Obtenir les statistiques des connexions WebSocket."
)
async def websocket_status():
    """
    Retourne le nombre de connexions et d'utilisateurs connectés.
    Utile pour le monitoring.
    """
    manager = get_websocket_manager()

    return {
        "active_connections": manager.get_connection_count(),
        "connected_users": len(manager.get_connected_users()),
        "status": "operational",
        "timestamp": utcnow().isoformat()
    }
