"""
Reserveo - Incidents Router
Signalement d'une place occupée par un autre véhicule.
"""

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from typing import Optional
import logging

from models.user import UserProfile
from security.firebase_auth import get_current_user
from services.incident_service import get_incident_service
from utils.errors import ReserveoError

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/incidents",
    tags=["Incidents"],
    responses={401: {"description": "Non autorisé"}}
)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Signaler un incident",
    description=(
        "Signale que la place réservée aujourd'hui est occupée. "
        "L'utilisateur est réaffecté à une place libre si possible."
    )
)
async def report_incident(
    reservation_id: str = Form(...),
    description: str = Form(..., min_length=1, max_length=2000),
    offending_plate: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    user: UserProfile = Depends(get_current_user)
):
    """
    Formulaire multipart:
    - reservation_id: réservation du jour de l'utilisateur
    - description: texte libre
    - offending_plate: matricule du véhicule en infraction (optionnel)
    - photo: JPEG, PNG ou HEIC (optionnelle)
    """
    try:
        photo_data = None
        if photo is not None and photo.filename:
            photo_data = (await photo.read(), photo.content_type)

        service = get_incident_service()
        return await service.create_report(
            user.uid,
            reservation_id,
            description,
            offending_plate=offending_plate,
            photo=photo_data,
        )
    except HTTPException:
        raise
    except ReserveoError:
        raise
    except Exception as e:
        logger.error(f"Erreur signalement incident par {user.uid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Erreur lors du signalement de l'incident"
        )


@router.get(
    "/mine",
    summary="Mes incidents",
    description="Incidents signalés par l'utilisateur."
)
async def list_my_incidents(user: UserProfile = Depends(get_current_user)):
    return await get_incident_service().list_user_incidents(user.uid)
