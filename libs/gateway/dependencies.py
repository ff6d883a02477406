from typing import AsyncGenerator, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from libs.common.config import get_settings
from libs.gateway.base import DataGateway
from libs.gateway.supabase_gateway import SupabaseGateway

bearer = HTTPBearer(auto_error=False)


async def get_gateway(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
) -> AsyncGenerator[DataGateway, None]:
    """
    FastAPI dependency yielding a gateway that acts as the calling user.
    """
    gateway = await SupabaseGateway.connect(
        get_settings(),
        access_token=credentials.credentials if credentials else None,
    )
    try:
        yield gateway
    finally:
        await gateway.aclose()


async def get_service_gateway() -> AsyncGenerator[DataGateway, None]:
    """
    FastAPI dependency yielding a service-role gateway for server functions.
    """
    gateway = await SupabaseGateway.connect(get_settings(), service_role=True)
    try:
        yield gateway
    finally:
        await gateway.aclose()
