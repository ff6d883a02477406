"""Payments router: hosted checkout sessions and payment verification."""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.rate_limit import payment_limit
from libs.gateway.base import DataGateway
from libs.gateway.dependencies import get_service_gateway
from services.payments_service.checkout import (
    create_checkout,
    load_pending_order,
    verify_payment,
)
from services.payments_service.dependencies import get_stripe_client
from services.payments_service.schemas import (
    CheckoutSessionResponse,
    CreateCheckoutRequest,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
)
from services.payments_service.stripe_client import StripeClient, StripeError

router = APIRouter(tags=["payments"])


@router.post("/create-checkout", response_model=CheckoutSessionResponse)
@payment_limit
async def create_checkout_session(
    request: Request,
    payload: CreateCheckoutRequest,
    current_user: AuthUser = Depends(get_current_user),
    stripe: StripeClient = Depends(get_stripe_client),
    gateway: DataGateway = Depends(get_service_gateway),
):
    """Create a payment session for the caller's Pending order."""
    await load_pending_order(gateway, current_user.user_id, payload.order_id)
    try:
        return await create_checkout(
            stripe,
            current_user.user_id,
            payload.items,
            payload.return_url,
            payload.order_id,
        )
    except StripeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)


@router.post("/verify-payment", response_model=VerifyPaymentResponse)
@payment_limit
async def verify_payment_session(
    request: Request,
    payload: VerifyPaymentRequest,
    current_user: AuthUser = Depends(get_current_user),
    stripe: StripeClient = Depends(get_stripe_client),
    gateway: DataGateway = Depends(get_service_gateway),
):
    """Confirm a payment session and mark the caller's order paid."""
    try:
        return await verify_payment(
            stripe,
            gateway,
            current_user.user_id,
            payload.session_id,
            payload.order_id,
        )
    except StripeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
