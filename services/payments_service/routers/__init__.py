"""Payments service routers package."""

from services.payments_service.routers.admin import router as admin_router
from services.payments_service.routers.payments import router as payments_router

__all__ = ["admin_router", "payments_router"]
