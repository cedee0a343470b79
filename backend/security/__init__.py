"""
Reserveo - Security Package
Contains authentication and authorization modules.
"""

from security.firebase_auth import (
    verify_firebase_token,
    get_current_user,
    get_current_admin,
    verify_admin_password,
)
from security.api_key import (
    verify_cron_api_key,
)

__all__ = [
    "verify_firebase_token",
    "get_current_user",
    "get_current_admin",
    "verify_admin_password",
    "verify_cron_api_key",
]
