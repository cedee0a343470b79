"""
Reserveo - Storage Service
Firebase Storage access for incident photos and floor plans.
Objects are private; readers get short-lived signed URLs.
"""

from typing import Optional
from datetime import timedelta
from urllib.parse import unquote, urlparse
import logging

from firebase_admin import storage

from config import get_settings

# Configure logging
logger = logging.getLogger(__name__)

INCIDENT_PHOTOS_DIR = "incident-photos"
FLOOR_PLANS_DIR = "floor-plans"


class StorageService:
    """Thin wrapper around the default Firebase Storage bucket."""

    def __init__(self, bucket=None):
        self._bucket = bucket
        self.settings = get_settings()

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = storage.bucket()
        return self._bucket

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """
        Upload bytes to the bucket.

        Returns:
            str: Storage path of the object
        """
        blob = self.bucket.blob(path)
        blob.upload_from_string(data, content_type=content_type)
        logger.info(f"Uploaded {path} ({len(data)} bytes)")
        return path

    def delete(self, path: str) -> bool:
        try:
            self.bucket.blob(path).delete()
            logger.info(f"Deleted {path}")
            return True
        except Exception as e:
            logger.error(f"Could not delete {path}: {e}")
            return False

    def signed_url(self, path: Optional[str], ttl_seconds: Optional[int] = None) -> Optional[str]:
        """Signed GET URL for a stored object, None when the path is empty or signing fails."""
        if not path:
            return None
        ttl = ttl_seconds or self.settings.signed_url_ttl_seconds
        try:
            return self.bucket.blob(path).generate_signed_url(
                version="v4",
                expiration=timedelta(seconds=ttl),
                method="GET",
            )
        except Exception as e:
            logger.error(f"Could not sign URL for {path}: {e}")
            return None

    @staticmethod
    def path_from_url(value: Optional[str], directory: str = INCIDENT_PHOTOS_DIR) -> Optional[str]:
        """
        Reduce a stored value to its object path.
        Older records may hold a full (public or signed) URL instead of a path.
        """
        if not value:
            return None
        if not value.startswith("http"):
            return value

        path = unquote(urlparse(value).path)
        marker = f"{directory}/"
        index = path.find(marker)
        if index == -1:
            return None
        return path[index:]


# Singleton instance
_storage_service: Optional[StorageService] = None


def get_storage_service() -> StorageService:
    """Get singleton storage service instance."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
