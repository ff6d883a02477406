"""Checkout session creation, payment verification and the pending-order sweep."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from libs.common.errors import CheckoutError
from libs.common.logging import get_logger
from libs.gateway.base import DataGateway, Record, eq, lt
from services.payments_service.schemas import (
    CheckoutItem,
    CheckoutSessionResponse,
    VerifyPaymentResponse,
)
from services.payments_service.stripe_client import StripeClient

logger = get_logger(__name__)

CHECKOUT_CURRENCY = "usd"
DEFAULT_VARIANT_TITLE = "Default Title"
PAID_STATUS = "Paid"
PENDING_STATUS = "Pending"
ABANDONED_STATUS = "Abandoned"


def to_minor_units(amount: Decimal) -> int:
    """Convert a price to cents, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_line_item(item: CheckoutItem) -> dict:
    product_data: dict = {
        "name": item.product.title,
        "images": [item.product.image_url] if item.product.image_url else [],
        "metadata": {"product_id": item.product.id, "variant_id": item.variant_id},
    }
    if item.variant_title != DEFAULT_VARIANT_TITLE:
        product_data["description"] = item.variant_title

    return {
        "price_data": {
            "currency": CHECKOUT_CURRENCY,
            "product_data": product_data,
            "unit_amount": to_minor_units(item.price.amount),
        },
        "quantity": item.quantity,
    }


async def create_checkout(
    stripe: StripeClient,
    user_id: str,
    items: List[CheckoutItem],
    return_url: str,
    order_id: str,
) -> CheckoutSessionResponse:
    """
    Create a hosted payment session for an order already stored as Pending.

    The session carries ``user_id`` and ``order_id`` in its metadata so
    verification can find the order again.
    """
    if not items:
        raise CheckoutError("No items in cart")

    logger.info("Creating checkout session for user %s order %s", user_id, order_id)
    base_url = return_url.rstrip("/")
    session = await stripe.create_checkout_session(
        {
            "payment_method_types": ["card"],
            "line_items": [build_line_item(item) for item in items],
            "mode": "payment",
            "success_url": (
                f"{base_url}/orders?session_id={{CHECKOUT_SESSION_ID}}&order_id={order_id}"
            ),
            "cancel_url": f"{base_url}/supplements",
            "client_reference_id": user_id,
            "metadata": {"user_id": user_id, "order_id": order_id},
        }
    )
    logger.info("Checkout session created: %s", session.get("id"))
    return CheckoutSessionResponse(url=session["url"], id=session["id"])


async def load_pending_order(gateway: DataGateway, user_id: str, order_id: str) -> Record:
    """Return the caller's order ``order_id``, which must still be Pending."""
    order = await gateway.read_one(
        "orders",
        [eq("id", order_id), eq("customer_id", user_id)],
        columns="id, status, customer_id",
    )
    if order is None:
        raise CheckoutError("Order not found")
    if order.get("status") != PENDING_STATUS:
        raise CheckoutError("Order is not awaiting payment")
    return order


async def verify_payment(
    stripe: StripeClient,
    gateway: DataGateway,
    user_id: str,
    session_id: Optional[str],
    order_id: Optional[str] = None,
) -> VerifyPaymentResponse:
    """
    Mark the order a paid session was created for as Paid.

    The order comes from the session's own metadata. A session created for
    another user, or for an order other than ``order_id`` when one is given,
    is rejected without touching any order.
    """
    if not session_id:
        raise CheckoutError("Missing session_id")

    session = await stripe.retrieve_checkout_session(session_id)
    payment_status = session.get("payment_status")
    if payment_status != "paid":
        return VerifyPaymentResponse(
            success=False, message="Payment not paid", status=payment_status
        )

    metadata = session.get("metadata") or {}
    if metadata.get("user_id") != user_id:
        logger.warning("Session %s does not belong to user %s", session_id, user_id)
        return VerifyPaymentResponse(
            success=False,
            message="Payment session does not belong to this user",
            status=payment_status,
        )

    session_order_id = metadata.get("order_id")
    if order_id and order_id != session_order_id:
        logger.warning(
            "Session %s was created for order %s, not %s",
            session_id,
            session_order_id,
            order_id,
        )
        return VerifyPaymentResponse(
            success=False,
            message="Payment session does not match this order",
            status=payment_status,
        )
    if not session_order_id:
        logger.warning("Paid session %s has no order to update", session_id)
        return VerifyPaymentResponse(success=True)

    await gateway.update(
        "orders",
        [eq("id", session_order_id), eq("customer_id", user_id)],
        {"status": PAID_STATUS, "payment_intent_id": session.get("payment_intent")},
    )
    logger.info("Order %s marked paid for %s", session_order_id, user_id)
    return VerifyPaymentResponse(success=True, order_id=session_order_id)


async def reconcile_pending_orders(gateway: DataGateway, older_than: datetime) -> List[str]:
    """Mark orders still Pending since before ``older_than`` as Abandoned."""
    filters = [eq("status", PENDING_STATUS), lt("created_at", older_than.isoformat())]
    stale = await gateway.read_many("orders", filters, columns="id")
    if not stale:
        return []

    await gateway.update("orders", filters, {"status": ABANDONED_STATUS})
    order_ids = [str(row["id"]) for row in stale]
    logger.info("Marked %d pending orders abandoned", len(order_ids))
    return order_ids
