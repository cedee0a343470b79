"""
Reserveo - Settings Service
Persisted business settings (reservation, waitlist and check-in rules)
with an in-memory TTL cache in front of Firestore.
"""

from typing import Optional, Dict, Any
import logging

from database.firebase_db import get_db, FirebaseDB
from config import get_settings, DEFAULT_RESERVATION_SETTINGS, DEFAULT_CHECKIN_SETTINGS
from utils.cache import TTLCache

# Configure logging
logger = logging.getLogger(__name__)

RESERVATION_SETTINGS_ID = "reservation"
CHECKIN_SETTINGS_ID = "checkin"


class SettingsService:
    """
    Service class for business settings.
    Reads are cached; every update invalidates the cached copy.
    """

    def __init__(self, db: FirebaseDB = None):
        self.db = db or get_db()
        settings = get_settings()
        self.cache = TTLCache(
            ttl_seconds=settings.settings_cache_ttl_seconds,
            max_bytes=settings.settings_cache_max_bytes,
        )

    async def _load(self, doc_id: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
        cached = self.cache.get(doc_id)
        if cached is not None:
            return dict(cached)

        stored = await self.db.get_document(FirebaseDB.COLLECTION_SETTINGS, doc_id) or {}
        merged = {**defaults}
        merged.update({k: v for k, v in stored.items() if k in defaults})
        self.cache.set(doc_id, merged)
        return dict(merged)

    async def _update(
        self,
        doc_id: str,
        defaults: Dict[str, Any],
        updates: Dict[str, Any],
        updated_by: Optional[str]
    ) -> Dict[str, Any]:
        values = {k: v for k, v in updates.items() if v is not None and k in defaults}
        if updated_by:
            values["updated_by"] = updated_by

        await self.db.set_document(FirebaseDB.COLLECTION_SETTINGS, doc_id, values)
        self.cache.invalidate(doc_id)
        logger.info(f"Settings '{doc_id}' updated: {sorted(values)}")
        return await self._load(doc_id, defaults)

    async def get_reservation_settings(self) -> Dict[str, Any]:
        return await self._load(RESERVATION_SETTINGS_ID, DEFAULT_RESERVATION_SETTINGS)

    async def update_reservation_settings(
        self,
        updates: Dict[str, Any],
        updated_by: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._update(
            RESERVATION_SETTINGS_ID, DEFAULT_RESERVATION_SETTINGS, updates, updated_by
        )

    async def get_waitlist_settings(self) -> Dict[str, Any]:
        """Waitlist subset of the reservation settings, without the prefix."""
        settings = await self.get_reservation_settings()
        return {
            "enabled": settings["waitlist_enabled"],
            "acceptance_time_minutes": settings["waitlist_acceptance_time_minutes"],
            "max_simultaneous": settings["waitlist_max_simultaneous"],
            "priority_by_role": settings["waitlist_priority_by_role"],
            "penalty_enabled": settings["waitlist_penalty_enabled"],
            "penalty_threshold": settings["waitlist_penalty_threshold"],
            "penalty_duration_days": settings["waitlist_penalty_duration_days"],
        }

    async def get_checkin_settings(self) -> Dict[str, Any]:
        return await self._load(CHECKIN_SETTINGS_ID, DEFAULT_CHECKIN_SETTINGS)

    async def update_checkin_settings(
        self,
        updates: Dict[str, Any],
        updated_by: Optional[str] = None
    ) -> Dict[str, Any]:
        return await self._update(
            CHECKIN_SETTINGS_ID, DEFAULT_CHECKIN_SETTINGS, updates, updated_by
        )

    # ==================== PER-GROUP CHECK-IN CONFIG ====================

    async def get_group_checkin_config(self, group_id: str) -> Dict[str, Any]:
        config = await self.db.get_document(
            FirebaseDB.COLLECTION_GROUP_CHECKIN_CONFIG, group_id
        )
        return {
            "group_id": group_id,
            "enabled": (config or {}).get("enabled", True),
            "use_custom_config": (config or {}).get("use_custom_config", False),
            "custom_checkin_window_hours": (config or {}).get("custom_checkin_window_hours"),
        }

    async def update_group_checkin_config(
        self,
        group_id: str,
        updates: Dict[str, Any]
    ) -> Dict[str, Any]:
        values = {k: v for k, v in updates.items() if v is not None}
        values["group_id"] = group_id
        await self.db.set_document(
            FirebaseDB.COLLECTION_GROUP_CHECKIN_CONFIG, group_id, values
        )
        logger.info(f"Check-in config of group {group_id} updated")
        return await self.get_group_checkin_config(group_id)

    async def get_effective_window_hours(self, group_id: str) -> int:
        """Custom window of the group when enabled, otherwise the global default."""
        config = await self.get_group_checkin_config(group_id)
        if config["use_custom_config"] and config["custom_checkin_window_hours"]:
            return int(config["custom_checkin_window_hours"])
        settings = await self.get_checkin_settings()
        return int(settings["default_checkin_window_hours"])

    def cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()


# Singleton instance
_settings_service: Optional[SettingsService] = None


def get_settings_service() -> SettingsService:
    """Get singleton settings service instance."""
    global _settings_service
    if _settings_service is None:
        _settings_service = SettingsService()
    return _settings_service
