"""
Reserveo - User Models
Defines all data models related to users, roles and authentication.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List
from datetime import datetime
from enum import Enum


class AppRole(str, Enum):
    """Enumeration of application roles (also used as parking spot types)."""
    GENERAL = "general"
    PREFERRED = "preferred"
    DIRECTOR = "director"
    VISITOR = "visitor"
    ADMIN = "admin"


# Priorité dans la file d'attente quand priority_by_role est actif
ROLE_PRIORITY = {
    AppRole.DIRECTOR.value: 3,
    AppRole.PREFERRED.value: 2,
    AppRole.GENERAL.value: 1,
    AppRole.ADMIN.value: 1,
    AppRole.VISITOR.value: 0,
}


def role_priority(roles: List[str]) -> int:
    """Highest queue priority among a user's roles."""
    return max((ROLE_PRIORITY.get(r, 0) for r in roles), default=0)


class UserProfile(BaseModel):
    """User profile of the authenticated caller."""
    uid: str = Field(..., description="Firebase user ID")
    email: Optional[EmailStr] = Field(default=None, description="User email address")
    first_name: Optional[str] = Field(default=None, description="First name")
    last_name: Optional[str] = Field(default=None, description="Last name")
    phone: Optional[str] = Field(default=None, description="Phone number")
    roles: List[AppRole] = Field(default_factory=lambda: [AppRole.GENERAL])
    is_blocked: bool = Field(default=False, description="Blocked by an administrator")
    blocked_reason: Optional[str] = None
    is_deactivated: bool = Field(default=False, description="Account deactivated")
    email_notifications: bool = Field(default=True)
    checkin_reminders: bool = Field(default=True)
    created_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return AppRole.ADMIN in self.roles

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or (self.email or self.uid)


class ProfileUpdateRequest(BaseModel):
    """Editable profile fields."""
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    email_notifications: Optional[bool] = None
    checkin_reminders: Optional[bool] = None


class BlockUserRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class SetRolesRequest(BaseModel):
    roles: List[AppRole] = Field(..., min_length=1)


class AdminPasswordRequest(BaseModel):
    """Admin password confirmation for destructive operations."""
    password: str = Field(..., min_length=1)


class TokenPayload(BaseModel):
    """Decoded Firebase token payload."""
    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    name: Optional[str] = None
    picture: Optional[str] = None
    auth_time: Optional[int] = None
    iat: Optional[int] = None
    exp: Optional[int] = None
    firebase: Optional[dict] = None
