"""
Reserveo - Reservations Router
Calendrier, disponibilité des places et gestion des réservations.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from datetime import date
import logging

from models.user import UserProfile
from models.reservation import ReservationCreateRequest, ChangeSpotRequest
from security.firebase_auth import get_current_user
from services.reservation_service import get_reservation_service
from utils.errors import ReserveoError
from utils.helpers import local_today

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/reservations",
    tags=["Réservations"],
    responses={401: {"description": "Non autorisé"}}
)


@router.get(
    "/date-range",
    summary="Période réservable",
    description="Premier et dernier jour réservables selon l'heure de rafraîchissement quotidienne."
)
async def get_date_range(user: UserProfile = Depends(get_current_user)):
    return await get_reservation_service().get_reservable_date_range()


@router.get(
    "/groups",
    summary="Mes groupes de places",
    description="Groupes actifs accessibles à l'utilisateur (dont le groupe General)."
)
async def get_my_groups(user: UserProfile = Depends(get_current_user)):
    return await get_reservation_service().get_user_groups(user.uid)


@router.get(
    "/calendar",
    summary="Mes réservations du mois",
    description="Réservations non annulées de l'utilisateur pour un mois donné."
)
async def get_calendar(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    user: UserProfile = Depends(get_current_user)
):
    service = get_reservation_service()
    return {
        "year": year,
        "month": month,
        "reservations": await service.get_month_reservations(user.uid, year, month),
    }


@router.get(
    "/availability",
    summary="Disponibilité",
    description=(
        "Sans paramètre 'date': places libres par jour du mois. "
        "Avec 'date': occupation de chaque groupe ce jour-là."
    )
)
async def get_availability(
    year: int = Query(None, ge=2000, le=2100),
    month: int = Query(None, ge=1, le=12),
    day: date = Query(None, alias="date"),
    user: UserProfile = Depends(get_current_user)
):
    service = get_reservation_service()
    if day is not None:
        return {
            "date": day.isoformat(),
            "groups": await service.get_groups_availability(user.uid, day),
        }

    today = local_today()
    year = year or today.year
    month = month or today.month
    return {
        "year": year,
        "month": month,
        "days": await service.get_month_availability(user.uid, year, month),
    }


@router.get(
    "/groups/{group_id}/spots",
    summary="Places d'un groupe",
    description="Places actives d'un groupe avec leur disponibilité pour une date."
)
async def get_group_spots(
    group_id: str,
    day: date = Query(..., alias="date"),
    user: UserProfile = Depends(get_current_user)
):
    service = get_reservation_service()
    if not user.is_admin and group_id not in await service.get_user_group_ids(user.uid):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No tienes acceso a este grupo de plazas"
        )
    group = await service.get_group(group_id)
    return {
        "group": group,
        "date": day.isoformat(),
        "is_blocked": await service.is_date_blocked(day, group_id),
        "spots": await service.get_available_spots(group_id, day),
    }


@router.get(
    "/today",
    summary="Réservation du jour",
    description="Réservation active (ou terminée) de l'utilisateur pour aujourd'hui, avec son check-in."
)
async def get_today(user: UserProfile = Depends(get_current_user)):
    reservation = await get_reservation_service().get_today_reservation(user.uid)
    return {"reservation": reservation}


@router.get(
    "/{reservation_id}",
    summary="Détail d'une réservation"
)
async def get_reservation(
    reservation_id: str,
    user: UserProfile = Depends(get_current_user)
):
    service = get_reservation_service()
    return await service.get_reservation_details(reservation_id, user.uid, user.is_admin)


@router.post(
    "/validate",
    summary="Valider une réservation",
    description="Vérifie toutes les règles sans réserver. Retourne le code d'erreur éventuel."
)
async def validate_reservation(
    request: ReservationCreateRequest,
    user: UserProfile = Depends(get_current_user)
):
    service = get_reservation_service()
    validation = await service.validate_spot_reservation(
        user.uid, request.spot_id, request.reservation_date
    )
    return validation.model_dump()


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Réserver une place",
    description="Réserve une place pour une date après validation de toutes les règles."
)
async def create_reservation(
    request: ReservationCreateRequest,
    user: UserProfile = Depends(get_current_user)
):
    """
    Créer une réservation.

    Erreurs:
    - 409 si la place ou l'utilisateur a déjà une réservation ce jour-là
    - 400 pour toute autre règle non respectée (code dans la réponse)
    """
    try:
        service = get_reservation_service()
        return await service.create_reservation(
            user.uid, request.spot_id, request.reservation_date
        )
    except HTTPException:
        raise
    except ReserveoError:
        raise
    except Exception as e:
        logger.error(f"Erreur création réservation pour {user.uid}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Erreur lors de la création de la réservation"
        )


@router.patch(
    "/{reservation_id}/spot",
    summary="Changer de place",
    description="Déplace une réservation active vers une autre place le même jour."
)
async def change_spot(
    reservation_id: str,
    request: ChangeSpotRequest,
    user: UserProfile = Depends(get_current_user)
):
    try:
        service = get_reservation_service()
        return await service.change_reservation_spot(user.uid, reservation_id, request.spot_id)
    except HTTPException:
        raise
    except ReserveoError:
        raise
    except Exception as e:
        logger.error(f"Erreur changement de place {reservation_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Erreur lors du changement de place"
        )


@router.post(
    "/{reservation_id}/cancel",
    summary="Annuler une réservation",
    description="Annule la réservation; la place libérée est proposée à la liste d'attente."
)
async def cancel_reservation(
    reservation_id: str,
    user: UserProfile = Depends(get_current_user)
):
    try:
        service = get_reservation_service()
        reservation = await service.cancel_reservation(
            reservation_id, user.uid, is_admin=user.is_admin
        )
        return {
            "success": True,
            "reservation_id": reservation_id,
            "status": reservation["status"],
            "message": "Reserva cancelada",
        }
    except HTTPException:
        raise
    except ReserveoError:
        raise
    except Exception as e:
        logger.error(f"Erreur annulation réservation {reservation_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Erreur lors de l'annulation"
        )
