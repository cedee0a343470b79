"""
Reserveo - Check-in Router
Confirmation d'arrivée et de départ pour la réservation du jour.
"""

from fastapi import APIRouter, Depends
import logging

from models.user import UserProfile
from models.reservation import CheckinResult, CheckoutResult
from security.firebase_auth import get_current_user
from services.checkin_service import get_checkin_service

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    tags=["Check-in"],
    responses={401: {"description": "Non autorisé"}}
)


@router.post(
    "/checkin/{reservation_id}",
    response_model=CheckinResult,
    summary="Check-in",
    description=(
        "Confirme l'arrivée sur la place réservée aujourd'hui. "
        "Un check-in après la période de grâce est accepté mais compte comme infraction."
    )
)
async def checkin(
    reservation_id: str,
    user: UserProfile = Depends(get_current_user)
) -> CheckinResult:
    """
    Codes d'erreur possibles: SYSTEM_DISABLED, GROUP_DISABLED,
    NO_ACTIVE_RESERVATION, ALREADY_CHECKED_IN, USER_BLOCKED, INVALID_DATE.
    """
    result = await get_checkin_service().perform_checkin(user.uid, reservation_id)
    return CheckinResult(**result)


@router.post(
    "/checkout/{reservation_id}",
    response_model=CheckoutResult,
    summary="Check-out",
    description="Confirme le départ; la place redevient disponible pour le reste de la journée."
)
async def checkout(
    reservation_id: str,
    user: UserProfile = Depends(get_current_user)
) -> CheckoutResult:
    result = await get_checkin_service().perform_checkout(user.uid, reservation_id)
    return CheckoutResult(**result)
