"""Store service routers package."""

from services.store_service.routers.cart import router as cart_router
from services.store_service.routers.checkout import router as checkout_router

__all__ = [
    "cart_router",
    "checkout_router",
]
