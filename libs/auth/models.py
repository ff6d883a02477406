import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    HEALTH_ARCHITECT = "health_architect"
    COACH = "coach"
    CLIENT = "client"


STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.HEALTH_ARCHITECT, UserRole.COACH})


def is_staff_role(role: Optional[UserRole]) -> bool:
    return role in STAFF_ROLES


class AuthEvent(str, enum.Enum):
    """Auth state change events emitted by the data gateway."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class AuthUser(BaseModel):
    """
    Represents an authenticated user from a Supabase access token.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"
    access_token: Optional[str] = Field(default=None, exclude=True)


class Session(BaseModel):
    """An authenticated session as seen by the portal.

    ``role`` is filled in by the auth session manager once it resolves;
    the gateway itself never knows it.
    """

    user_id: str
    email: Optional[str] = None
    access_token: str
    refresh_token: Optional[str] = None
    role: Optional[UserRole] = None
