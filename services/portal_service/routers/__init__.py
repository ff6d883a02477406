"""Portal service routers package."""

from services.portal_service.routers.crm import router as crm_router
from services.portal_service.routers.leads import router as leads_router
from services.portal_service.routers.me import router as me_router

__all__ = [
    "crm_router",
    "leads_router",
    "me_router",
]
