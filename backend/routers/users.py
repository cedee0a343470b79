"""
Reserveo - Users Router
Profil de l'utilisateur connecté, statistiques, avertissements et blocages.
"""

from fastapi import APIRouter, Depends, HTTPException, status
import logging

from models.user import UserProfile, ProfileUpdateRequest
from security.firebase_auth import get_current_user
from services.user_service import get_user_service
from services.incident_service import get_incident_service
from services.checkin_service import get_checkin_service

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/users",
    tags=["Utilisateurs"],
    responses={401: {"description": "Non autorisé"}}
)


@router.get(
    "/me",
    summary="Mon profil",
    description="Retourne le profil de l'utilisateur connecté avec ses rôles."
)
async def get_my_profile(user: UserProfile = Depends(get_current_user)):
    """
    Obtenir le profil de l'utilisateur connecté.

    Le profil est créé automatiquement lors de la première connexion.
    """
    return {
        **user.model_dump(),
        "is_admin": user.is_admin,
        "display_name": user.display_name,
    }


@router.put(
    "/me",
    summary="Modifier mon profil",
    description="Met à jour le nom, le téléphone et les préférences de notification."
)
async def update_my_profile(
    request: ProfileUpdateRequest,
    user: UserProfile = Depends(get_current_user)
):
    try:
        service = get_user_service()
        return await service.update_profile(user.uid, request.model_dump(exclude_unset=True))
    except Exception as e:
        logger.error(f"Erreur mise à jour profil {user.uid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Erreur de mise à jour du profil"
        )


@router.get(
    "/me/stats",
    summary="Mes statistiques",
    description="Compteurs de réservations, check-ins et avertissements."
)
async def get_my_stats(user: UserProfile = Depends(get_current_user)):
    return await get_user_service().get_user_stats(user.uid)


@router.get(
    "/me/warnings",
    summary="Mes avertissements",
    description="Liste des avertissements reçus (incidents et infractions de check-in)."
)
async def get_my_warnings(user: UserProfile = Depends(get_current_user)):
    service = get_incident_service()
    warnings = await service.list_user_warnings(user.uid)
    return {
        "warnings": warnings,
        "total": len(warnings),
        "unviewed": sum(1 for w in warnings if not w.get("viewed_at")),
    }


@router.post(
    "/me/warnings/viewed",
    summary="Marquer les avertissements comme vus"
)
async def mark_my_warnings_viewed(user: UserProfile = Depends(get_current_user)):
    updated = await get_incident_service().mark_warnings_viewed(user.uid)
    return {"updated": updated}


@router.get(
    "/me/blocks",
    summary="Mes blocages",
    description="Blocages temporaires actifs et infractions en attente."
)
async def get_my_blocks(user: UserProfile = Depends(get_current_user)):
    result = await get_checkin_service().get_user_blocks(user.uid)
    result["is_blocked_by_admin"] = user.is_blocked
    result["blocked_reason"] = user.blocked_reason
    return result
