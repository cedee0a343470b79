"""
Reserveo - Notification Models
"""

from enum import Enum


class NotificationType(str, Enum):
    WAITLIST_REGISTERED = "waitlist_registered"
    WAITLIST_OFFER = "waitlist_offer"
    WAITLIST_REMINDER = "waitlist_reminder"
    WAITLIST_ACCEPTED = "waitlist_accepted"
    WAITLIST_REJECTED = "waitlist_rejected"
    WAITLIST_EXPIRED = "waitlist_expired"
    WARNING_RECEIVED = "warning_received"
    USER_BLOCKED = "user_blocked"
    BLOCK_EXPIRED = "block_expired"
    RESERVATION_CONFIRMED = "reservation_confirmed"
    RESERVATION_CANCELLED = "reservation_cancelled"
    CHECKIN_REMINDER = "checkin_reminder"
    CHECKIN_SUCCESS = "checkin_success"
    INCIDENT_REPORTED = "incident_reported"
    INCIDENT_REASSIGNMENT = "incident_reassignment"
    INCIDENT_CONFIRMED = "incident_confirmed"
    LICENSE_PLATE_APPROVED = "license_plate_approved"
    LICENSE_PLATE_REJECTED = "license_plate_rejected"
    GROUP_ACCESS_ADDED = "group_access_added"
    GROUP_ACCESS_REMOVED = "group_access_removed"


class NotificationCategory(str, Enum):
    RESERVATION = "reservation"
    WAITLIST = "waitlist"
    WARNING = "warning"
    INCIDENT = "incident"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Catégorie par défaut de chaque type
NOTIFICATION_CATEGORIES = {
    NotificationType.WAITLIST_REGISTERED: NotificationCategory.WAITLIST,
    NotificationType.WAITLIST_OFFER: NotificationCategory.WAITLIST,
    NotificationType.WAITLIST_REMINDER: NotificationCategory.WAITLIST,
    NotificationType.WAITLIST_ACCEPTED: NotificationCategory.WAITLIST,
    NotificationType.WAITLIST_REJECTED: NotificationCategory.WAITLIST,
    NotificationType.WAITLIST_EXPIRED: NotificationCategory.WAITLIST,
    NotificationType.WARNING_RECEIVED: NotificationCategory.WARNING,
    NotificationType.USER_BLOCKED: NotificationCategory.WARNING,
    NotificationType.BLOCK_EXPIRED: NotificationCategory.SYSTEM,
    NotificationType.RESERVATION_CONFIRMED: NotificationCategory.RESERVATION,
    NotificationType.RESERVATION_CANCELLED: NotificationCategory.RESERVATION,
    NotificationType.CHECKIN_REMINDER: NotificationCategory.RESERVATION,
    NotificationType.CHECKIN_SUCCESS: NotificationCategory.RESERVATION,
    NotificationType.INCIDENT_REPORTED: NotificationCategory.INCIDENT,
    NotificationType.INCIDENT_REASSIGNMENT: NotificationCategory.INCIDENT,
    NotificationType.INCIDENT_CONFIRMED: NotificationCategory.INCIDENT,
    NotificationType.LICENSE_PLATE_APPROVED: NotificationCategory.SYSTEM,
    NotificationType.LICENSE_PLATE_REJECTED: NotificationCategory.SYSTEM,
    NotificationType.GROUP_ACCESS_ADDED: NotificationCategory.SYSTEM,
    NotificationType.GROUP_ACCESS_REMOVED: NotificationCategory.SYSTEM,
}
