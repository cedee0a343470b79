"""
Reserveo - Notifications Router
Notifications in-app de l'utilisateur.
"""

from fastapi import APIRouter, Depends, Query
import logging

from models.user import UserProfile
from security.firebase_auth import get_current_user
from services.notification_service import get_notification_service

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    responses={401: {"description": "Non autorisé"}}
)


@router.get(
    "",
    summary="Mes notifications",
    description="Notifications les plus récentes (optionnellement non lues seulement)."
)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user: UserProfile = Depends(get_current_user)
):
    service = get_notification_service()
    return await service.list_notifications(user.uid, unread_only=unread_only, limit=limit)


@router.get(
    "/unread-count",
    summary="Nombre de notifications non lues"
)
async def unread_count(user: UserProfile = Depends(get_current_user)):
    return {"unread": await get_notification_service().unread_count(user.uid)}


@router.post(
    "/{notification_id}/read",
    summary="Marquer comme lue"
)
async def mark_as_read(
    notification_id: str,
    user: UserProfile = Depends(get_current_user)
):
    return await get_notification_service().mark_as_read(user.uid, notification_id)


@router.post(
    "/read-all",
    summary="Tout marquer comme lu"
)
async def mark_all_as_read(user: UserProfile = Depends(get_current_user)):
    return {"updated": await get_notification_service().mark_all_as_read(user.uid)}
