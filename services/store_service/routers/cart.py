"""Store cart router: the caller's persisted cart."""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from services.store_service.cart import CartStore
from services.store_service.dependencies import get_cart
from services.store_service.schemas import CartItem, CartQuantityUpdate, CartResponse

router = APIRouter(tags=["store"])


def _cart_response(cart: CartStore) -> CartResponse:
    return CartResponse(
        items=cart.items,
        total_items=cart.total_items,
        total_price=cart.total_price,
        checkout_url=cart.checkout_url,
    )


@router.get("/cart", response_model=CartResponse)
async def get_my_cart(cart: CartStore = Depends(get_cart)):
    return _cart_response(cart)


@router.post("/cart/items", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
async def add_cart_item(item: CartItem, cart: CartStore = Depends(get_cart)):
    """Add a line; an existing line with the same variant and plan is merged."""
    cart.add_item(item)
    return _cart_response(cart)


@router.patch("/cart/items/{variant_id}", response_model=CartResponse)
async def update_cart_item(
    variant_id: str,
    payload: CartQuantityUpdate,
    cart: CartStore = Depends(get_cart),
):
    """Set a line's quantity; zero or less removes it."""
    cart.update_quantity(variant_id, payload.quantity, payload.selling_plan_id)
    return _cart_response(cart)


@router.delete("/cart/items/{variant_id}", response_model=CartResponse)
async def remove_cart_item(
    variant_id: str,
    selling_plan_id: Optional[str] = None,
    cart: CartStore = Depends(get_cart),
):
    cart.remove_item(variant_id, selling_plan_id)
    return _cart_response(cart)


@router.delete("/cart", status_code=status.HTTP_204_NO_CONTENT)
async def clear_cart(cart: CartStore = Depends(get_cart)):
    cart.clear_cart()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
