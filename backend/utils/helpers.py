"""
Reserveo - Helper Functions
Utility functions used across the application.
"""

from typing import Any, Dict, Iterator, Optional, Tuple
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo
import calendar

from config import get_settings


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def local_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def local_now() -> datetime:
    """Current time in the configured local timezone."""
    return utcnow().astimezone(local_tz())


def local_today() -> date:
    return local_now().date()


def local_midnight(day: date) -> datetime:
    """Local midnight of a day, expressed in UTC."""
    return datetime(day.year, day.month, day.day, tzinfo=local_tz()).astimezone(timezone.utc)


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """
    First and last day of a month.

    Args:
        year: Calendar year
        month: Month number (1-12)

    Returns:
        Tuple[date, date]: (first_day, last_day)
    """
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every day from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def as_utc(value: Any) -> Optional[datetime]:
    """Normalize a stored timestamp (datetime or ISO string) to aware UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def serialize_document(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Convert Firestore timestamps to ISO strings for JSON responses."""
    if doc is None:
        return None
    safe = {}
    for key, value in doc.items():
        if hasattr(value, "isoformat"):
            safe[key] = value.isoformat()
        elif isinstance(value, dict):
            safe[key] = serialize_document(value)
        elif isinstance(value, list):
            safe[key] = [
                serialize_document(v) if isinstance(v, dict) else v for v in value
            ]
        else:
            safe[key] = value
    return safe


def mask_plate(plate: Optional[str]) -> str:
    """Mask a license plate for logs (e.g. 1234ABC -> 12***BC)."""
    if not plate:
        return ""
    if len(plate) <= 4:
        return "*" * len(plate)
    return f"{plate[:2]}{'*' * (len(plate) - 4)}{plate[-2:]}"


def full_name(profile: Optional[Dict[str, Any]]) -> str:
    if not profile:
        return ""
    name = f"{profile.get('first_name') or ''} {profile.get('last_name') or ''}".strip()
    return name or profile.get("email") or ""
