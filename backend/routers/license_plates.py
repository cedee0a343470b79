"""
Reserveo - License Plates Router
Demandes de matricules de l'utilisateur.
"""

from fastapi import APIRouter, Depends, HTTPException, status
import logging

from models.user import UserProfile
from models.license_plate import LicensePlateCreate
from security.firebase_auth import get_current_user
from services.license_plate_service import get_license_plate_service
from utils.errors import ReserveoError

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/license-plates",
    tags=["Matricules"],
    responses={401: {"description": "Non autorisé"}}
)


@router.get(
    "",
    summary="Mes matricules",
    description="Matricules actifs (en attente, approuvés, refusés) et historique des supprimés."
)
async def list_my_plates(user: UserProfile = Depends(get_current_user)):
    return await get_license_plate_service().list_user_plates(user.uid)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Demander un matricule",
    description="Soumet un matricule à l'approbation d'un administrateur."
)
async def add_plate(
    request: LicensePlateCreate,
    user: UserProfile = Depends(get_current_user)
):
    """
    Le matricule est normalisé (majuscules, sans espaces ni tirets).

    Erreurs:
    - 400 INVALID_PLATE_FORMAT
    - 409 PLATE_TAKEN: approuvé pour un autre utilisateur
    - 409 PLATE_DUPLICATE: déjà demandé par cet utilisateur
    """
    try:
        service = get_license_plate_service()
        return await service.add_plate(
            user.uid,
            request.plate_number,
            requested_electric=request.requested_electric,
            requested_disability=request.requested_disability,
        )
    except HTTPException:
        raise
    except ReserveoError:
        raise
    except Exception as e:
        logger.error(f"Erreur ajout matricule pour {user.uid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Erreur lors de l'ajout du matricule"
        )


@router.delete(
    "/{plate_id}",
    summary="Supprimer un matricule",
    description="Suppression logique: le matricule reste dans l'historique."
)
async def delete_plate(
    plate_id: str,
    user: UserProfile = Depends(get_current_user)
):
    await get_license_plate_service().delete_plate(user.uid, plate_id)
    return {"success": True, "plate_id": plate_id}
