"""
Reserveo - Services Package
Business logic and service layer.
"""

from services.websocket_service import WebSocketManager, get_websocket_manager
from services.settings_service import SettingsService, get_settings_service
from services.notification_service import NotificationService, get_notification_service
from services.reservation_service import ReservationService, get_reservation_service
from services.waitlist_service import WaitlistService, get_waitlist_service
from services.checkin_service import CheckinService, get_checkin_service

__all__ = [
    "WebSocketManager",
    "get_websocket_manager",
    "SettingsService",
    "get_settings_service",
    "NotificationService",
    "get_notification_service",
    "ReservationService",
    "get_reservation_service",
    "WaitlistService",
    "get_waitlist_service",
    "CheckinService",
    "get_checkin_service",
]
