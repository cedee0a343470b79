"""
Reserveo - Routers Package
API route handlers.
"""

from routers.users import router as users_router
from routers.reservations import router as reservations_router
from routers.checkin import router as checkin_router
from routers.license_plates import router as license_plates_router
from routers.waitlist import router as waitlist_router
from routers.incidents import router as incidents_router
from routers.notifications import router as notifications_router
from routers.admin import router as admin_router
from routers.admin_reports import router as admin_reports_router
from routers.jobs import router as jobs_router
from routers.websocket import router as websocket_router

__all__ = [
    "users_router",
    "reservations_router",
    "checkin_router",
    "license_plates_router",
    "waitlist_router",
    "incidents_router",
    "notifications_router",
    "admin_router",
    "admin_reports_router",
    "jobs_router",
    "websocket_router",
]
