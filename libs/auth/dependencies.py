from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError

from libs.auth.models import AuthUser, UserRole, is_staff_role
from libs.common.config import get_settings
from libs.common.errors import GatewayError
from libs.common.logging import get_logger
from libs.gateway.base import DataGateway
from libs.gateway.dependencies import get_gateway

logger = get_logger(__name__)
security = HTTPBearer()


async def get_current_user(
    request: Request,
    token: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthUser:
    """
    Validate a Supabase access token and return the authenticated user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        # Supabase signs access tokens with HS256 and audience "authenticated".
        payload = jwt.decode(
            token.credentials,
            get_settings().SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience="authenticated",
        )
        user = AuthUser(**payload, access_token=token.credentials)
    except (JWTError, ValidationError):
        raise credentials_exception

    # Read by the rate limiter key function.
    request.state.user = user
    return user


async def get_current_role(
    current_user: Annotated[AuthUser, Depends(get_current_user)],
    gateway: Annotated[DataGateway, Depends(get_gateway)],
) -> UserRole:
    """
    Resolve the caller's portal role through the get_user_role RPC.
    """
    try:
        raw_role = await gateway.rpc("get_user_role", {"_user_id": current_user.user_id})
    except GatewayError as exc:
        logger.error("Role lookup failed for %s: %s", current_user.user_id, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not resolve user role",
        )
    try:
        return UserRole(raw_role)
    except ValueError:
        return UserRole.CLIENT


async def require_staff(
    current_user: Annotated[AuthUser, Depends(get_current_user)],
    role: Annotated[UserRole, Depends(get_current_role)],
) -> AuthUser:
    """
    Ensure the caller is an admin, health architect or coach.
    """
    if not is_staff_role(role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff privileges required",
        )
    return current_user
