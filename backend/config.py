"""
Reserveo - Configuration Module
Gère toutes les variables d'environnement et paramètres.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Dict, Any
from functools import lru_cache
from pathlib import Path

# Charger le fichier .env manuellement
from dotenv import load_dotenv

# Trouver le fichier .env
env_path = Path(__file__).parent / ".env"
load_dotenv(env_path)


# Valeurs par défaut des paramètres métier persistés dans Firestore
DEFAULT_RESERVATION_SETTINGS: Dict[str, Any] = {
    "advance_reservation_days": 7,
    "daily_refresh_hour": 10,
    "fast_reservation_threshold_minutes": 5,
    "waitlist_enabled": True,
    "waitlist_acceptance_time_minutes": 60,
    "waitlist_max_simultaneous": 5,
    "waitlist_priority_by_role": False,
    "waitlist_penalty_enabled": False,
    "waitlist_penalty_threshold": 3,
    "waitlist_penalty_duration_days": 7,
}

DEFAULT_CHECKIN_SETTINGS: Dict[str, Any] = {
    "system_enabled": False,
    "default_checkin_window_hours": 12,
    "grace_period_minutes": 60,
    "checkin_infraction_threshold": 3,
    "checkout_infraction_threshold": 3,
    "temporary_block_days": 7,
    "send_checkin_reminders": True,
}


class Settings(BaseSettings):
    """Paramètres de l'application chargés depuis les variables d'environnement."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Firebase Configuration
    firebase_project_id: str = Field(default="", alias="FIREBASE_PROJECT_ID")
    firebase_private_key_id: str = Field(default="", alias="FIREBASE_PRIVATE_KEY_ID")
    firebase_private_key: str = Field(default="", alias="FIREBASE_PRIVATE_KEY")
    firebase_client_email: str = Field(default="", alias="FIREBASE_CLIENT_EMAIL")
    firebase_client_id: str = Field(default="", alias="FIREBASE_CLIENT_ID")
    firebase_auth_uri: str = Field(
        default="https://accounts.google.com/o/oauth2/auth",
        alias="FIREBASE_AUTH_URI"
    )
    firebase_token_uri: str = Field(
        default="https://oauth2.googleapis.com/token",
        alias="FIREBASE_TOKEN_URI"
    )
    firebase_auth_provider_cert_url: str = Field(
        default="https://www.googleapis.com/oauth2/v1/certs",
        alias="FIREBASE_AUTH_PROVIDER_CERT_URL"
    )
    firebase_client_cert_url: str = Field(default="", alias="FIREBASE_CLIENT_CERT_URL")
    firebase_storage_bucket: str = Field(default="", alias="FIREBASE_STORAGE_BUCKET")
    # Clé Web API pour la vérification du mot de passe admin (REST)
    firebase_api_key: str = Field(default="", alias="FIREBASE_API_KEY")

    # API Security - Clé API pour le déclenchement externe des tâches planifiées
    cron_api_key: str = Field(
        default="reserveo-cron-key-change-me",
        alias="CRON_API_KEY"
    )

    # Application Settings
    debug: bool = Field(default=True, alias="DEBUG")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")
    timezone: str = Field(default="Europe/Madrid", alias="TIMEZONE")
    app_url: str = Field(default="http://localhost:8080", alias="APP_URL")

    # Email (Resend)
    resend_api_key: str = Field(default="", alias="RESEND_API_KEY")
    resend_from_email: str = Field(default="noreply@reserveo.app", alias="RESEND_FROM_EMAIL")
    resend_from_name: str = Field(default="Reserveo", alias="RESEND_FROM_NAME")

    # Stockage des photos d'incident
    incident_photo_max_mb: int = Field(default=10, alias="INCIDENT_PHOTO_MAX_MB")
    signed_url_ttl_seconds: int = Field(default=3600, alias="SIGNED_URL_TTL_SECONDS")

    # Rappels de check-in
    checkin_reminder_lead_minutes: int = Field(default=30, alias="CHECKIN_REMINDER_LEAD_MINUTES")

    # Cache des paramètres
    settings_cache_ttl_seconds: int = Field(default=300, alias="SETTINGS_CACHE_TTL_SECONDS")
    settings_cache_max_bytes: int = Field(default=262144, alias="SETTINGS_CACHE_MAX_BYTES")

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def incident_photo_max_bytes(self) -> int:
        return self.incident_photo_max_mb * 1024 * 1024

    def get_firebase_credentials(self) -> dict:
        """Generate Firebase credentials dictionary."""
        return {
            "type": "service_account",
            "project_id": self.firebase_project_id,
            "private_key_id": self.firebase_private_key_id,
            "private_key": self.firebase_private_key.replace("\\n", "\n"),
            "client_email": self.firebase_client_email,
            "client_id": self.firebase_client_id,
            "auth_uri": self.firebase_auth_uri,
            "token_uri": self.firebase_token_uri,
            "auth_provider_x509_cert_url": self.firebase_auth_provider_cert_url,
            "client_x509_cert_url": self.firebase_client_cert_url,
        }


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
