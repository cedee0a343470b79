"""
Reserveo - Waitlist Router
Inscription en liste d'attente et réponse aux offres de places.
"""

from fastapi import APIRouter, Depends, status
import logging

from models.user import UserProfile
from models.waitlist import WaitlistRegisterRequest
from security.firebase_auth import get_current_user
from services.waitlist_service import get_waitlist_service

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/waitlist",
    tags=["Liste d'attente"],
    responses={401: {"description": "Non autorisé"}}
)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="S'inscrire en liste d'attente",
    description="Inscrit l'utilisateur dans la file de chaque groupe demandé pour une date."
)
async def register(
    request: WaitlistRegisterRequest,
    user: UserProfile = Depends(get_current_user)
):
    """
    Retourne le résultat par groupe (inscrit, position, ou raison du refus).
    Les refus globaux (liste désactivée, pénalité, blocage, pas de matricule
    approuvé, date hors période, réservation existante) renvoient une erreur.
    """
    service = get_waitlist_service()
    return await service.register(user.uid, request.group_ids, request.reservation_date)


@router.get(
    "/entries",
    summary="Mes inscriptions"
)
async def list_entries(user: UserProfile = Depends(get_current_user)):
    return await get_waitlist_service().list_user_entries(user.uid)


@router.delete(
    "/entries/{entry_id}",
    summary="Quitter une liste d'attente"
)
async def cancel_entry(
    entry_id: str,
    user: UserProfile = Depends(get_current_user)
):
    entry = await get_waitlist_service().cancel_entry(user.uid, entry_id)
    return {"success": True, "entry_id": entry_id, "status": entry["status"]}


@router.get(
    "/offers",
    summary="Mes offres en attente",
    description="Offres de places à accepter ou refuser avant leur expiration."
)
async def list_offers(user: UserProfile = Depends(get_current_user)):
    return await get_waitlist_service().list_pending_offers(user.uid)


@router.post(
    "/offers/{offer_id}/accept",
    summary="Accepter une offre",
    description="Accepte l'offre et crée la réservation correspondante."
)
async def accept_offer(
    offer_id: str,
    user: UserProfile = Depends(get_current_user)
):
    reservation = await get_waitlist_service().accept_offer(user.uid, offer_id)
    return {"success": True, "offer_id": offer_id, "reservation": reservation}


@router.post(
    "/offers/{offer_id}/reject",
    summary="Refuser une offre",
    description="Refuse l'offre; la place est proposée à la personne suivante."
)
async def reject_offer(
    offer_id: str,
    user: UserProfile = Depends(get_current_user)
):
    return await get_waitlist_service().reject_offer(user.uid, offer_id)


@router.get(
    "/penalty",
    summary="Ma pénalité",
    description="Compteurs d'offres refusées / expirées et blocage éventuel de la liste d'attente."
)
async def get_penalty(user: UserProfile = Depends(get_current_user)):
    return await get_waitlist_service().check_penalty_status(user.uid)
