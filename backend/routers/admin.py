"""
Reserveo - Admin Router
Back-office: utilisateurs, groupes, places, accès, dates bloquées,
configuration, matricules, incidents et liste d'attente.
"""

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from typing import Optional
from datetime import date
import logging

from models.user import UserProfile, BlockUserRequest, SetRolesRequest, AdminPasswordRequest
from models.parking import (
    ParkingGroupCreate,
    ParkingGroupUpdate,
    GroupDeactivateRequest,
    ScheduleDeactivationRequest,
    ParkingSpotCreate,
    ParkingSpotUpdate,
    SpotPositionsUpdate,
    GroupAssignmentRequest,
    BlockDateRequest,
    ReservationSettingsUpdate,
    CheckinSettingsUpdate,
    GroupCheckinConfigUpdate,
)
from models.license_plate import LicensePlateApprove, LicensePlateReject, PlatePermissionsUpdate
from models.incident import IncidentConfirmRequest, IncidentDismissRequest, IncidentNotesRequest
from security.firebase_auth import get_current_admin
from services.admin_service import get_admin_service
from services.settings_service import get_settings_service
from services.license_plate_service import get_license_plate_service
from services.incident_service import get_incident_service
from services.waitlist_service import get_waitlist_service
from utils.errors import ReserveoError

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={
        401: {"description": "Non autorisé"},
        403: {"description": "Accès administrateur requis"}
    }
)


# ==================== UTILISATEURS ====================

@router.get(
    "/users",
    summary="Liste des utilisateurs",
    description="Profils avec rôles, matricules, groupes et blocages actifs."
)
async def list_users(admin: UserProfile = Depends(get_current_admin)):
    return await get_admin_service().list_users()


@router.post(
    "/users/{user_id}/block",
    summary="Bloquer un utilisateur",
    description="Bloque le compte et annule ses réservations futures."
)
async def block_user(
    user_id: str,
    request: BlockUserRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().block_user(user_id, admin.uid, request.reason)


@router.post(
    "/users/{user_id}/unblock",
    summary="Débloquer un utilisateur"
)
async def unblock_user(user_id: str, admin: UserProfile = Depends(get_current_admin)):
    return await get_admin_service().unblock_user(user_id, admin.uid)


@router.post(
    "/users/{user_id}/deactivate",
    summary="Désactiver un compte",
    description="Annule les réservations futures et les inscriptions en liste d'attente."
)
async def deactivate_user(user_id: str, admin: UserProfile = Depends(get_current_admin)):
    return await get_admin_service().deactivate_user(user_id, admin.uid)


@router.post(
    "/users/{user_id}/reactivate",
    summary="Réactiver un compte"
)
async def reactivate_user(user_id: str, admin: UserProfile = Depends(get_current_admin)):
    return await get_admin_service().reactivate_user(user_id, admin.uid)


@router.post(
    "/users/{user_id}/delete",
    summary="Supprimer définitivement un utilisateur",
    description="Requiert le mot de passe de l'administrateur."
)
async def delete_user(
    user_id: str,
    request: AdminPasswordRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    """
    Suppression définitive: profil, matricules, accès aux groupes,
    inscriptions en liste d'attente, notifications et compte Firebase.
    """
    try:
        service = get_admin_service()
        return await service.delete_user_permanently(
            user_id, admin.uid, admin.email, request.password
        )
    except HTTPException:
        raise
    except ReserveoError:
        raise
    except Exception as e:
        logger.error(f"Erreur suppression utilisateur {user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Erreur lors de la suppression de l'utilisateur"
        )


@router.put(
    "/users/{user_id}/roles",
    summary="Définir les rôles"
)
async def set_roles(
    user_id: str,
    request: SetRolesRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().set_roles(user_id, request.roles, admin.uid)


# ==================== GROUPES ====================

@router.get("/groups", summary="Liste des groupes")
async def list_groups(admin: UserProfile = Depends(get_current_admin)):
    return await get_admin_service().list_groups()


@router.post(
    "/groups",
    status_code=status.HTTP_201_CREATED,
    summary="Créer un groupe"
)
async def create_group(
    request: ParkingGroupCreate,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().create_group(request.model_dump(mode="json"), admin.uid)


@router.patch("/groups/{group_id}", summary="Modifier un groupe")
async def update_group(
    group_id: str,
    request: ParkingGroupUpdate,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_admin_service()
    return await service.update_group(group_id, request.model_dump(mode="json", exclude_unset=True))


@router.post(
    "/groups/{group_id}/toggle",
    summary="Activer / désactiver un groupe"
)
async def toggle_group(group_id: str, admin: UserProfile = Depends(get_current_admin)):
    return await get_admin_service().toggle_group(group_id, admin.uid)


@router.post(
    "/groups/{group_id}/deactivate",
    summary="Désactiver un groupe",
    description="Désactive immédiatement le groupe et annule ses réservations futures."
)
async def deactivate_group(
    group_id: str,
    request: GroupDeactivateRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().deactivate_group(group_id, admin.uid, request.reason)


@router.post(
    "/groups/{group_id}/schedule-deactivation",
    summary="Programmer la désactivation d'un groupe"
)
async def schedule_deactivation(
    group_id: str,
    request: ScheduleDeactivationRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_admin_service()
    return await service.schedule_group_deactivation(
        group_id, request.deactivation_date, request.reason
    )


@router.delete(
    "/groups/{group_id}/schedule-deactivation",
    summary="Annuler une désactivation programmée"
)
async def cancel_scheduled_deactivation(
    group_id: str,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().cancel_scheduled_deactivation(group_id)


@router.post(
    "/groups/{group_id}/floor-plan",
    summary="Téléverser le plan d'un groupe",
    description="Image JPEG, PNG, WEBP ou SVG stockée dans Firebase Storage."
)
async def upload_floor_plan(
    group_id: str,
    file: UploadFile = File(...),
    admin: UserProfile = Depends(get_current_admin)
):
    try:
        data = await file.read()
        return await get_admin_service().upload_floor_plan(group_id, data, file.content_type)
    except HTTPException:
        raise
    except ReserveoError:
        raise
    except Exception as e:
        logger.error(f"Erreur téléversement plan {group_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Erreur lors du téléversement du plan"
        )


@router.get(
    "/groups/{group_id}/checkin-config",
    summary="Configuration de check-in d'un groupe"
)
async def get_group_checkin_config(
    group_id: str,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_settings_service().get_group_checkin_config(group_id)


@router.put(
    "/groups/{group_id}/checkin-config",
    summary="Modifier la configuration de check-in d'un groupe"
)
async def update_group_checkin_config(
    group_id: str,
    request: GroupCheckinConfigUpdate,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_settings_service()
    return await service.update_group_checkin_config(
        group_id, request.model_dump(exclude_none=True)
    )


# ==================== PLACES ====================

@router.get("/spots", summary="Liste des places")
async def list_spots(
    group_id: Optional[str] = Query(None),
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().list_spots(group_id)


@router.post(
    "/spots",
    status_code=status.HTTP_201_CREATED,
    summary="Créer une place"
)
async def create_spot(
    request: ParkingSpotCreate,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().create_spot(request.model_dump(mode="json"))


@router.put(
    "/spots/positions",
    summary="Positions des places sur le plan",
    description="Enregistre les coordonnées définies dans l'éditeur de plan."
)
async def update_positions(
    request: SpotPositionsUpdate,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_admin_service()
    updated = await service.update_positions([p.model_dump() for p in request.positions])
    return {"updated": updated}


@router.patch("/spots/{spot_id}", summary="Modifier une place")
async def update_spot(
    spot_id: str,
    request: ParkingSpotUpdate,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_admin_service()
    return await service.update_spot(spot_id, request.model_dump(mode="json", exclude_unset=True))


@router.post(
    "/spots/{spot_id}/toggle",
    summary="Activer / désactiver une place",
    description="La désactivation annule les réservations futures de la place."
)
async def toggle_spot(spot_id: str, admin: UserProfile = Depends(get_current_admin)):
    return await get_admin_service().toggle_spot(spot_id, admin.uid)


# ==================== ACCÈS AUX GROUPES ====================

@router.get("/assignments", summary="Accès aux groupes")
async def list_assignments(
    group_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().list_assignments(group_id, user_id)


@router.post(
    "/assignments",
    status_code=status.HTTP_201_CREATED,
    summary="Donner accès à un groupe"
)
async def add_assignment(
    request: GroupAssignmentRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().add_assignment(request.user_id, request.group_id, admin.uid)


@router.delete(
    "/assignments",
    summary="Retirer l'accès à un groupe",
    description="Annule aussi les réservations futures de l'utilisateur dans ce groupe."
)
async def remove_assignment(
    user_id: str = Query(...),
    group_id: str = Query(...),
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().remove_assignment(user_id, group_id, admin.uid)


# ==================== DATES BLOQUÉES ====================

@router.get("/blocked-dates", summary="Dates bloquées")
async def list_blocked_dates(
    from_date: Optional[date] = Query(None),
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_admin_service().list_blocked_dates(from_date)


@router.post(
    "/blocked-dates",
    status_code=status.HTTP_201_CREATED,
    summary="Bloquer une date",
    description="Bloque un jour (global ou pour un groupe) et annule les réservations concernées."
)
async def block_date(
    request: BlockDateRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_admin_service()
    return await service.block_date(
        request.blocked_date, admin.uid, reason=request.reason, group_id=request.group_id
    )


@router.delete("/blocked-dates/{block_id}", summary="Débloquer une date")
async def unblock_date(block_id: str, admin: UserProfile = Depends(get_current_admin)):
    await get_admin_service().unblock_date(block_id)
    return {"success": True, "block_id": block_id}


# ==================== CONFIGURATION ====================

@router.get("/settings/reservation", summary="Paramètres de réservation")
async def get_reservation_settings(admin: UserProfile = Depends(get_current_admin)):
    return await get_settings_service().get_reservation_settings()


@router.put("/settings/reservation", summary="Modifier les paramètres de réservation")
async def update_reservation_settings(
    request: ReservationSettingsUpdate,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_settings_service()
    return await service.update_reservation_settings(request.model_dump(exclude_none=True), admin.uid)


@router.get("/settings/checkin", summary="Paramètres de check-in")
async def get_checkin_settings(admin: UserProfile = Depends(get_current_admin)):
    return await get_settings_service().get_checkin_settings()


@router.put("/settings/checkin", summary="Modifier les paramètres de check-in")
async def update_checkin_settings(
    request: CheckinSettingsUpdate,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_settings_service()
    return await service.update_checkin_settings(request.model_dump(exclude_none=True), admin.uid)


@router.get("/settings/cache-stats", summary="Statistiques du cache de configuration")
async def get_cache_stats(admin: UserProfile = Depends(get_current_admin)):
    return get_settings_service().cache_stats()


# ==================== MATRICULES ====================

@router.get("/license-plates/pending", summary="Matricules en attente d'approbation")
async def list_pending_plates(admin: UserProfile = Depends(get_current_admin)):
    return await get_license_plate_service().list_pending()


@router.post("/license-plates/{plate_id}/approve", summary="Approuver un matricule")
async def approve_plate(
    plate_id: str,
    request: LicensePlateApprove,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_license_plate_service()
    return await service.approve(
        plate_id, admin.uid,
        approve_electric=request.approve_electric,
        approve_disability=request.approve_disability,
    )


@router.post("/license-plates/{plate_id}/reject", summary="Refuser un matricule")
async def reject_plate(
    plate_id: str,
    request: LicensePlateReject,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_license_plate_service().reject(plate_id, admin.uid, request.reason)


@router.patch(
    "/license-plates/{plate_id}/permissions",
    summary="Permis électrique / mobilité réduite",
    description="Accorde ou retire les permis avec une durée en jours ou une date d'expiration."
)
async def update_plate_permissions(
    plate_id: str,
    request: PlatePermissionsUpdate,
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_license_plate_service()
    return await service.update_permissions(plate_id, request.model_dump(exclude_unset=True))


# ==================== INCIDENTS ====================

@router.get("/incidents", summary="Liste des incidents")
async def list_incidents(
    incident_status: Optional[str] = Query(None, alias="status"),
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_incident_service().list_incidents(incident_status)


@router.post(
    "/incidents/{incident_id}/confirm",
    summary="Confirmer un incident",
    description="Avertit le contrevenant identifié et annule sa réservation de la place."
)
async def confirm_incident(
    incident_id: str,
    request: IncidentConfirmRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_incident_service().confirm(incident_id, admin.uid, request.notes)


@router.post("/incidents/{incident_id}/dismiss", summary="Rejeter un incident")
async def dismiss_incident(
    incident_id: str,
    request: IncidentDismissRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_incident_service().dismiss(incident_id, admin.uid, request.reason)


@router.put("/incidents/{incident_id}/notes", summary="Notes internes d'un incident")
async def update_incident_notes(
    incident_id: str,
    request: IncidentNotesRequest,
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_incident_service().add_notes(incident_id, request.notes)


# ==================== LISTE D'ATTENTE ====================

@router.get("/waitlist/stats", summary="Statistiques de la liste d'attente")
async def waitlist_stats(admin: UserProfile = Depends(get_current_admin)):
    return await get_waitlist_service().get_statistics()


@router.get("/waitlist/entries", summary="Inscriptions en liste d'attente")
async def waitlist_entries(
    group_id: Optional[str] = Query(None),
    reservation_date: Optional[date] = Query(None),
    entry_status: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: UserProfile = Depends(get_current_admin)
):
    service = get_waitlist_service()
    return await service.list_entries(group_id, reservation_date, entry_status, page, page_size)


@router.delete("/waitlist/entries/{entry_id}", summary="Retirer une inscription")
async def remove_waitlist_entry(entry_id: str, admin: UserProfile = Depends(get_current_admin)):
    entry = await get_waitlist_service().remove_entry(entry_id, admin.uid)
    return {"success": True, "entry_id": entry_id, "status": entry["status"]}


@router.get("/waitlist/logs", summary="Journal de la liste d'attente")
async def waitlist_logs(
    user_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_waitlist_service().get_logs(user_id, action, limit)
