"""
Reserveo - Application Principale
Point d'entrée FastAPI avec toutes les configurations.
"""

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
import logging
import sys

# Import routers
from routers import (
    users_router,
    reservations_router,
    checkin_router,
    license_plates_router,
    waitlist_router,
    incidents_router,
    notifications_router,
    admin_router,
    admin_reports_router,
    jobs_router,
    websocket_router,
)

# Import utilities
from database.firebase_db import init_firebase
from utils.errors import ReserveoError
from utils.helpers import utcnow
from utils.scheduler import start_scheduler, stop_scheduler
from config import get_settings

APP_VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestionnaire du cycle de vie de l'application.
    Gère les événements de démarrage et d'arrêt.
    """
    # ===== DÉMARRAGE =====
    logger.info("🚀 Démarrage de Reserveo...")

    try:
        # Initialiser Firebase
        logger.info("Initialisation de Firebase...")
        init_firebase()
        logger.info("✅ Firebase initialisé")

        # Démarrer le scheduler en arrière-plan
        logger.info("Démarrage du scheduler...")
        start_scheduler()
        logger.info("✅ Scheduler démarré")

        logger.info("🎉 Reserveo est prêt!")

    except Exception as e:
        logger.error(f"❌ Erreur de démarrage: {e}")
        raise

    yield  # L'application s'exécute ici

    # ===== ARRÊT =====
    logger.info("🛑 Arrêt de Reserveo...")

    try:
        stop_scheduler()
        logger.info("✅ Scheduler arrêté")
    except Exception as e:
        logger.error(f"Erreur d'arrêt: {e}")

    logger.info("👋 Arrêt de Reserveo terminé")


# Créer l'application FastAPI
app = FastAPI(
    title="Reserveo",
    description="""
    ## Réservation de places de parking d'entreprise

    * **Calendrier**: Réserver une place par jour dans les groupes autorisés
    * **Matricules**: Demandes approuvées par un administrateur, permis électrique / mobilité réduite
    * **Check-in / Check-out**: Suivi de la présence avec infractions, avertissements et blocages
    * **Liste d'attente**: Offres temporaires des places libérées
    * **Incidents**: Signalement d'une place occupée avec réaffectation automatique
    * **Back-office**: Utilisateurs, groupes, places, dates bloquées, rapports
    * **Mises à Jour WebSocket**: Changements de réservations en direct

    ### Sécurité

    * Endpoints utilisateurs: Token Firebase (Bearer authentication)
    * Endpoints /jobs: Clé API dans le header X-API-Key
    """,
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# Récupérer les settings
settings = get_settings()

# Configurer CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== GESTIONNAIRES D'EXCEPTIONS ====================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Gère les erreurs de validation Pydantic."""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(x) for x in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Erreur de validation",
            "errors": errors
        }
    )


@app.exception_handler(ReserveoError)
async def business_exception_handler(request: Request, exc: ReserveoError):
    """Gère les refus métier levés par les services."""
    logger.warning(f"{request.method} {request.url.path} refusé: {exc.code} - {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.message,
            "code": exc.code
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Gère les exceptions inattendues."""
    logger.error(f"Erreur inattendue: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Une erreur inattendue s'est produite",
            "type": type(exc).__name__
        }
    )


# ==================== INCLUSION DES ROUTERS ====================

# Route WebSocket (sans préfixe - le chemin complet /ws/reservations est dans le router)
app.include_router(websocket_router)

# Routes utilisateurs
app.include_router(users_router)
app.include_router(reservations_router)
app.include_router(checkin_router)
app.include_router(license_plates_router)
app.include_router(waitlist_router)
app.include_router(incidents_router)
app.include_router(notifications_router)

# Routes back-office et tâches
app.include_router(admin_router)
app.include_router(admin_reports_router)
app.include_router(jobs_router)


# ==================== ENDPOINTS RACINE ====================

@app.get(
    "/",
    tags=["Health"],
    summary="Endpoint Racine",
    description="Retourne les informations de base de l'API."
)
async def root():
    """
    Endpoint racine.
    Retourne les informations de base et le statut de l'API.
    """
    return {
        "name": "Reserveo",
        "version": APP_VERSION,
        "status": "operational",
        "documentation": "/docs",
        "websocket": "/ws/reservations",
        "timestamp": utcnow().isoformat()
    }


@app.get(
    "/health",
    tags=["Health"],
    summary="Vérification de Santé",
    description="Retourne l'état de santé du système."
)
async def health_check():
    """
    Endpoint de vérification de santé.
    Utilisé pour le monitoring et les health checks des load balancers.
    """
    from services.websocket_service import get_websocket_manager
    from services.settings_service import get_settings_service
    from utils.scheduler import get_scheduler

    manager = get_websocket_manager()
    scheduler = get_scheduler()

    return {
        "status": "healthy",
        "services": {
            "firebase": "connected",
            "scheduler": "running" if scheduler.is_running() else "stopped",
            "websocket_connections": manager.get_connection_count(),
            "settings_cache": get_settings_service().cache_stats()
        },
        "timestamp": utcnow().isoformat()
    }


@app.get(
    "/api/v1/info",
    tags=["Health"],
    summary="Informations API",
    description="Retourne les informations détaillées de l'API."
)
async def api_info():
    """
    Informations détaillées de l'API.
    Retourne la version, les endpoints et les détails de configuration.
    """
    return {
        "name": "Reserveo API",
        "version": APP_VERSION,
        "timezone": settings.timezone,
        "endpoints": {
            "users": "/users",
            "reservations": "/reservations",
            "checkin": "/checkin/{reservation_id}",
            "checkout": "/checkout/{reservation_id}",
            "license_plates": "/license-plates",
            "waitlist": "/waitlist",
            "incidents": "/incidents",
            "notifications": "/notifications",
            "admin": "/admin",
            "reports": "/admin/reports",
            "jobs": "/jobs",
            "websocket": "/ws/reservations"
        },
        "api_key": "Utiliser le header X-API-Key pour les endpoints /jobs",
        "documentation": {
            "swagger": "/docs",
            "redoc": "/redoc"
        }
    }


# ==================== POINT D'ENTRÉE PRINCIPAL ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level="info"
    )
