"""
Reserveo - Admin Reports Router
Rapports de check-in, statistiques de vitesse de réservation,
exports CSV et journal des tâches planifiées.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from typing import Optional
from datetime import date, timedelta
import logging

from database.firebase_db import get_db, FirebaseDB
from models.user import UserProfile
from security.firebase_auth import get_current_admin
from services.reports_service import get_reports_service
from utils.helpers import local_today

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/admin/reports",
    tags=["Admin - Rapports"],
    responses={
        401: {"description": "Non autorisé"},
        403: {"description": "Accès administrateur requis"}
    }
)


def _csv_response(content: str, filename: str) -> Response:
    # BOM pour l'ouverture correcte des accents dans Excel
    return Response(
        content="\ufeff" + content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}.csv"'}
    )


def _period(start_date: Optional[date], end_date: Optional[date]):
    end_date = end_date or local_today()
    return start_date or end_date - timedelta(days=6), end_date


@router.get(
    "/infractions/today",
    summary="Infractions du jour"
)
async def today_infractions(admin: UserProfile = Depends(get_current_admin)):
    return await get_reports_service().get_today_infractions()


@router.get(
    "/checkins",
    summary="Historique des check-ins",
    description="Filtres: groupe, utilisateur, place, période, avec ou sans check-out."
)
async def checkin_history(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_id: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    spot_id: Optional[str] = Query(None),
    has_checkout: Optional[bool] = Query(None),
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_reports_service().get_checkin_history(
        start_date, end_date, group_id, user_id, spot_id, has_checkout
    )


@router.get(
    "/checkins/stats",
    summary="Statistiques de check-in",
    description="Totaux, retards, infractions et taux de conformité."
)
async def checkin_stats(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_id: Optional[str] = Query(None),
    admin: UserProfile = Depends(get_current_admin)
):
    return await get_reports_service().get_checkin_stats(start_date, end_date, group_id)


@router.get(
    "/reservations/stats",
    summary="Vitesse de réservation",
    description=(
        "Activité par heure, heatmap jour x heure, heure de pointe, temps moyen "
        "depuis le déblocage quotidien et utilisateurs les plus rapides. "
        "Période par défaut: 7 derniers jours."
    )
)
async def reservation_stats(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_id: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=50),
    admin: UserProfile = Depends(get_current_admin)
):
    start_date, end_date = _period(start_date, end_date)
    return await get_reports_service().get_reservation_stats(start_date, end_date, group_id, limit)


@router.get(
    "/export/reservations.csv",
    summary="Export CSV des réservations"
)
async def export_reservations(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_id: Optional[str] = Query(None),
    admin: UserProfile = Depends(get_current_admin)
):
    start_date, end_date = _period(start_date, end_date)
    content = await get_reports_service().export_reservations_csv(start_date, end_date, group_id)
    return _csv_response(content, f"reservas-{start_date}-{end_date}")


@router.get(
    "/export/top-users.csv",
    summary="Export CSV des utilisateurs les plus rapides"
)
async def export_top_users(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_id: Optional[str] = Query(None),
    admin: UserProfile = Depends(get_current_admin)
):
    start_date, end_date = _period(start_date, end_date)
    content = await get_reports_service().export_top_users_csv(start_date, end_date, group_id)
    return _csv_response(content, "top-usuarios-rapidos")


@router.get(
    "/export/checkins.csv",
    summary="Export CSV de l'historique des check-ins"
)
async def export_checkins(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_id: Optional[str] = Query(None),
    admin: UserProfile = Depends(get_current_admin)
):
    content = await get_reports_service().export_checkin_history_csv(
        start_date=start_date, end_date=end_date, group_id=group_id
    )
    return _csv_response(content, "historial-checkin")


@router.get(
    "/cron-logs",
    summary="Journal des tâches planifiées"
)
async def cron_logs(
    job_name: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    admin: UserProfile = Depends(get_current_admin)
):
    filters = [("job_name", "==", job_name)] if job_name else None
    return await get_db().query_documents(
        FirebaseDB.COLLECTION_CRON_LOGS,
        filters=filters,
        order_by="started_at",
        descending=True,
        limit=limit
    )
