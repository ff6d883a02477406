from fastapi import Depends

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.notifications import Notifier
from libs.gateway.base import DataGateway
from libs.gateway.dependencies import get_gateway
from services.store_service.cart import CartStore
from services.store_service.storage import CartStorage


def get_cart_storage(current_user: AuthUser = Depends(get_current_user)) -> CartStorage:
    """
    FastAPI dependency returning the caller's cart document.
    """
    return CartStorage(key=f"{get_settings().CART_STORAGE_KEY}-{current_user.user_id}")


async def get_cart(
    storage: CartStorage = Depends(get_cart_storage),
    gateway: DataGateway = Depends(get_gateway),
) -> CartStore:
    return CartStore(gateway, storage, Notifier())
