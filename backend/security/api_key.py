"""
Reserveo - API Key Authentication Module
Handles API key validation for external triggering of scheduled jobs.
"""

from fastapi import HTTPException, status, Header
from typing import Optional
import secrets
import logging

from config import get_settings

# Configure logging
logger = logging.getLogger(__name__)


async def verify_cron_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    x_job_source: Optional[str] = Header(None, alias="X-Job-Source"),
) -> dict:
    """
    Verify API key for job trigger requests (external cron, ops tooling).

    Callers must send:
    - X-API-Key: The cron API key
    - X-Job-Source: Name of the caller (optional, logged)

    Raises:
        HTTPException: If API key is invalid or missing
    """
    if not x_api_key:
        logger.warning("Job trigger request without API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Include 'X-API-Key' header.",
        )

    settings = get_settings()

    # Use constant-time comparison to prevent timing attacks
    if not secrets.compare_digest(x_api_key, settings.cron_api_key):
        logger.warning(f"Invalid cron API key attempted from: {x_job_source}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    logger.debug(f"Job trigger authenticated: {x_job_source or 'unknown'}")

    return {
        "authenticated": True,
        "source": x_job_source,
        "type": "cron"
    }
