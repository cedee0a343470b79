"""
Reserveo - Email Service
Sends notification e-mails through the Resend HTTP API.
"""

from typing import Optional, Dict, Any
from html import escape
import logging

import httpx

from config import get_settings

# Configure logging
logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


def render_email_html(
    title: str,
    message: str,
    user_name: str,
    action_url: Optional[str] = None
) -> str:
    """Minimal HTML body shared by every notification type."""
    button = ""
    if action_url:
        button = (
            f'<p><a href="{escape(action_url)}" '
            f'style="background:#667eea;color:#fff;padding:12px 24px;'
            f'border-radius:6px;text-decoration:none;">Abrir Reserveo</a></p>'
        )
    return (
        "<!DOCTYPE html><html><body style=\"font-family:Arial,sans-serif;"
        "background:#f5f5f5;padding:20px;\">"
        "<div style=\"max-width:600px;margin:0 auto;background:#fff;"
        "border-radius:12px;padding:30px;\">"
        f"<h2>{escape(title)}</h2>"
        f"<p>Hola {escape(user_name)},</p>"
        f"<p>{escape(message)}</p>"
        f"{button}"
        "<p style=\"color:#888;font-size:12px;\">Reserveo - Gestión de aparcamiento</p>"
        "</div></body></html>"
    )


class EmailService:
    """
    Service class for transactional e-mail.
    Failures are logged and reported through the return value, never raised.
    """

    def __init__(self):
        self.settings = get_settings()

    @property
    def enabled(self) -> bool:
        return bool(self.settings.resend_api_key)

    async def send_notification_email(
        self,
        notification_id: str,
        to_email: str,
        user_name: str,
        notification_type: str,
        title: str,
        message: str,
        category: str = "notification",
        priority: str = "medium",
        action_url: Optional[str] = None
    ) -> Optional[str]:
        """
        Send one notification e-mail.

        Returns:
            Optional[str]: Resend e-mail ID, or None if not sent
        """
        if not self.enabled:
            logger.debug("RESEND_API_KEY not configured, e-mail skipped")
            return None

        sender = self.settings.resend_from_email
        payload: Dict[str, Any] = {
            "from": f"{self.settings.resend_from_name} <{sender}>",
            "to": [to_email],
            "subject": title,
            "html": render_email_html(
                title, message, user_name, action_url or self.settings.app_url
            ),
            "reply_to": sender,
            "headers": {
                "X-Entity-Ref-ID": notification_id,
                "List-Unsubscribe": f"<{self.settings.app_url}/profile/preferences>",
                "List-Unsubscribe-Post": "List-Unsubscribe=One-Click",
            },
            "tags": [
                {"name": "category", "value": category},
                {"name": "type", "value": notification_type},
                {"name": "priority", "value": priority},
            ],
        }

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    RESEND_API_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
                )

            if response.status_code >= 400:
                logger.error(
                    f"Resend API error for notification {notification_id}: "
                    f"{response.status_code} {response.text}"
                )
                return None

            email_id = response.json().get("id")
            logger.info(f"Email sent for notification {notification_id}: {email_id}")
            return email_id

        except httpx.HTTPError as e:
            logger.error(f"Email delivery failed for notification {notification_id}: {e}")
            return None


# Singleton instance
_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get singleton e-mail service instance."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
