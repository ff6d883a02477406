from typing import AsyncGenerator

from fastapi import Depends, Request

from libs.gateway.base import DataGateway
from libs.gateway.dependencies import get_gateway
from services.portal_service.container import PortalContainer


async def get_portal(
    request: Request,
    gateway: DataGateway = Depends(get_gateway),
) -> AsyncGenerator[PortalContainer, None]:
    """
    FastAPI dependency yielding a started portal container for the caller.
    """
    async with PortalContainer(
        gateway, user_agent=request.headers.get("user-agent")
    ) as portal:
        yield portal
