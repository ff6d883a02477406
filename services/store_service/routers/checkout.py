"""Store checkout router: turn the caller's cart into an order and a payment URL."""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.rate_limit import checkout_limit
from services.store_service.cart import CartStore
from services.store_service.dependencies import get_cart
from services.store_service.schemas import CheckoutResult

router = APIRouter(tags=["store"])


@router.post("/checkout", response_model=CheckoutResult)
@checkout_limit
async def checkout(
    request: Request,
    current_user: AuthUser = Depends(get_current_user),
    cart: CartStore = Depends(get_cart),
):
    if not cart.items:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cart is empty")

    result = await cart.submit_order(current_user.user_id)
    if result is None:
        failure = cart.notifier.last_error
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=failure.message if failure else "Failed to place order",
        )
    return result
