"""
Reserveo - Jobs Router
Déclenchement externe des tâches planifiées (cron, outils d'exploitation).
"""

from fastapi import APIRouter, Depends, HTTPException, status
import logging

from security.api_key import verify_cron_api_key
from utils.scheduler import JOBS, run_job

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(
    prefix="/jobs",
    tags=["Tâches"],
    responses={401: {"description": "Clé API invalide"}}
)


@router.get(
    "",
    summary="Liste des tâches",
    description="Noms des tâches qui peuvent être déclenchées."
)
async def list_jobs(auth: dict = Depends(verify_cron_api_key)):
    return [{"name": name, "description": description} for name, (_, description) in JOBS.items()]


@router.post(
    "/{job_name}",
    summary="Exécuter une tâche",
    description="Exécute immédiatement une tâche planifiée et enregistre le résultat dans cron_logs."
)
async def trigger_job(
    job_name: str,
    auth: dict = Depends(verify_cron_api_key)
):
    """
    Header requis: X-API-Key.
    Retourne le statut, la durée et le nombre d'enregistrements traités.
    """
    if job_name not in JOBS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Tâche inconnue: {job_name}"
        )
    logger.info(f"Tâche {job_name} déclenchée par {auth.get('source') or 'inconnu'}")
    return await run_job(job_name)
