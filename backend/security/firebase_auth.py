"""
Reserveo - Firebase Authentication Module
Handles Firebase ID token verification, profile loading and admin checks.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth
from typing import Optional, Dict, Any
import logging

import httpx

from config import get_settings
from models.user import UserProfile, AppRole, TokenPayload

# Configure logging
logger = logging.getLogger(__name__)

# Security scheme for Bearer token
bearer_scheme = HTTPBearer(auto_error=False)

FIREBASE_SIGNIN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"


def decode_token(token: str) -> TokenPayload:
    """
    Verify a raw Firebase ID token (also used by the WebSocket endpoint).

    Raises:
        HTTPException: If the token is expired, revoked or invalid
    """
    try:
        decoded_token = auth.verify_id_token(token)

        return TokenPayload(
            uid=decoded_token.get("uid"),
            email=decoded_token.get("email"),
            email_verified=decoded_token.get("email_verified", False),
            name=decoded_token.get("name"),
            picture=decoded_token.get("picture"),
            auth_time=decoded_token.get("auth_time"),
            iat=decoded_token.get("iat"),
            exp=decoded_token.get("exp"),
            firebase=decoded_token.get("firebase"),
        )

    except auth.ExpiredIdTokenError:
        logger.warning("Expired Firebase token received")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired. Please sign in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    except auth.RevokedIdTokenError:
        logger.warning("Revoked Firebase token received")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been revoked. Please sign in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    except auth.InvalidIdTokenError as e:
        logger.warning(f"Invalid Firebase token: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    except Exception as e:
        logger.error(f"Token verification error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication service error",
        )


async def verify_firebase_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> TokenPayload:
    """
    Verify Firebase ID token from Authorization header.

    Args:
        credentials: Bearer token from Authorization header

    Returns:
        TokenPayload: Decoded token information

    Raises:
        HTTPException: If token is invalid or missing
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return decode_token(credentials.credentials)


def profile_from_document(uid: str, profile: Dict[str, Any]) -> UserProfile:
    """Build the request-scoped UserProfile from a stored profile document."""
    roles = []
    for role in profile.get("roles") or [AppRole.GENERAL.value]:
        try:
            roles.append(AppRole(role))
        except ValueError:
            logger.warning(f"Unknown role '{role}' on profile {uid}")

    return UserProfile(
        uid=uid,
        email=profile.get("email"),
        first_name=profile.get("first_name"),
        last_name=profile.get("last_name"),
        phone=profile.get("phone"),
        roles=roles or [AppRole.GENERAL],
        is_blocked=bool(profile.get("is_blocked")),
        blocked_reason=profile.get("blocked_reason"),
        is_deactivated=bool(profile.get("is_deactivated")),
        email_notifications=profile.get("email_notifications", True),
        checkin_reminders=profile.get("checkin_reminders", True),
        created_at=profile.get("created_at"),
    )


async def get_current_user(
    token: TokenPayload = Depends(verify_firebase_token)
) -> UserProfile:
    """
    Get the current authenticated user profile.
    Creates the profile in Firestore on first sign-in.

    Raises:
        HTTPException: 403 if the account is deactivated
    """
    # Import here to avoid circular imports
    from services.user_service import get_user_service

    try:
        profile = await get_user_service().get_or_create_profile(token)
    except Exception as e:
        logger.error(f"Error getting user profile: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error retrieving user profile",
        )

    user = profile_from_document(token.uid, profile)
    if user.is_deactivated:
        logger.warning(f"Deactivated user {token.uid} attempted access")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account deactivated",
        )
    return user


async def get_current_admin(
    user: UserProfile = Depends(get_current_user)
) -> UserProfile:
    """
    Verify that the current user has admin privileges.

    Raises:
        HTTPException: If user is not an admin
    """
    if not user.is_admin:
        logger.warning(f"Non-admin user {user.uid} attempted admin action")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )

    return user


async def verify_admin_password(email: Optional[str], password: str) -> bool:
    """
    Re-authenticate an administrator with the Firebase REST API before a
    destructive action.

    Returns:
        bool: True when the password is correct
    """
    settings = get_settings()
    if not settings.firebase_api_key or not email:
        logger.error("Password confirmation unavailable: FIREBASE_API_KEY or email missing")
        return False

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(
                FIREBASE_SIGNIN_URL,
                params={"key": settings.firebase_api_key},
                json={"email": email, "password": password, "returnSecureToken": False},
            )
    except httpx.HTTPError as e:
        logger.error(f"Password confirmation request failed: {e}")
        return False

    if response.status_code != 200:
        logger.warning(f"Admin password confirmation failed for {email}")
        return False
    return True
