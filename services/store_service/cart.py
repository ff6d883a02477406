"""Persisted shopping cart and the checkout sequence.

Checkout is sequential, not transactional:

    1. require a session
    2. insert the order row (status Pending)
    3. insert one order_items row per cart line
    4. invoke the ``create-checkout`` server function
    5. hand the payment URL back to the caller

A failure after step 2 leaves the Pending order behind; the payments service
reconciliation sweep marks such orders abandoned.
"""

from decimal import Decimal
from typing import List, Optional

from libs.common.config import get_settings
from libs.common.errors import AuthError, CheckoutError, GatewayError, PortalError
from libs.common.logging import get_logger
from libs.common.notifications import Notifier
from libs.gateway.base import DataGateway
from services.store_service.schemas import (
    CartItem,
    CartKey,
    CartState,
    CheckoutResult,
)
from services.store_service.storage import CartStorage

logger = get_logger(__name__)

PENDING_ORDER_STATUS = "Pending"
CREATE_CHECKOUT_FUNCTION = "create-checkout"


class CartStore:
    def __init__(
        self,
        gateway: DataGateway,
        storage: CartStorage,
        notifier: Optional[Notifier] = None,
        *,
        return_url: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self._gateway = gateway
        self._storage = storage
        self._notifier = notifier or Notifier()
        self._return_url = return_url or settings.PUBLIC_SITE_URL
        self._currency = settings.ORDER_CURRENCY

        state = storage.load()
        self.items: List[CartItem] = list(state.items)
        self.checkout_url: Optional[str] = state.checkout_url
        self.is_loading = False

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def total_price(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))

    def add_item(self, item: CartItem) -> None:
        """Add a line, summing quantities into an existing line with the same key."""
        for index, existing in enumerate(self.items):
            if existing.key == item.key:
                self.items[index] = existing.model_copy(
                    update={"quantity": existing.quantity + item.quantity}
                )
                break
        else:
            self.items.append(item)
        self._persist()

    def update_quantity(
        self, variant_id: str, quantity: int, selling_plan_id: Optional[str] = None
    ) -> None:
        key: CartKey = (variant_id, selling_plan_id)
        if quantity <= 0:
            self.remove_item(variant_id, selling_plan_id)
            return
        self.items = [
            item.model_copy(update={"quantity": quantity}) if item.key == key else item
            for item in self.items
        ]
        self._persist()

    def remove_item(self, variant_id: str, selling_plan_id: Optional[str] = None) -> None:
        key: CartKey = (variant_id, selling_plan_id)
        self.items = [item for item in self.items if item.key != key]
        self._persist()

    def clear_cart(self) -> None:
        self.items = []
        self.checkout_url = None
        self._persist()

    async def submit_order(self, user_id: str) -> Optional[CheckoutResult]:
        """Create the order and a payment session; None when nothing happened.

        Failures are reported through the notifier and leave the cart intact.
        """
        if not self.items:
            return None

        self.is_loading = True
        try:
            return await self._place_order(user_id)
        except PortalError as exc:
            logger.error("Order submission failed for %s: %s", user_id, exc)
            self._notifier.error(exc.message or "Failed to place order")
            return None
        except (ValueError, TypeError):
            logger.exception("Malformed payment session for %s", user_id)
            self._notifier.error("Failed to initialize payment")
            return None
        finally:
            self.is_loading = False

    async def _place_order(self, user_id: str) -> CheckoutResult:
        session = await self._gateway.get_session()
        if session is None:
            raise AuthError("You must be logged in to checkout")

        items = list(self.items)
        order = await self._gateway.insert(
            "orders",
            {
                "customer_id": user_id,
                "total_amount": float(self.total_price),
                "status": PENDING_ORDER_STATUS,
                "currency": self._currency,
            },
        )
        order_id = str(order["id"])
        logger.info("Created pending order %s for %s", order_id, user_id)

        await self._gateway.insert(
            "order_items",
            [
                {
                    "order_id": order_id,
                    "product_id": item.product.id,
                    "quantity": item.quantity,
                    "unit_price": float(item.price.amount),
                    "title": item.product.title,
                    "metadata": {
                        "variant_id": item.variant_id,
                        "variant_title": item.variant_title,
                        "selling_plan_id": item.selling_plan_id,
                        "options": [o.model_dump() for o in item.selected_options],
                    },
                }
                for item in items
            ],
        )

        try:
            checkout = await self._gateway.invoke_server_function(
                CREATE_CHECKOUT_FUNCTION,
                {
                    "items": [item.model_dump(mode="json") for item in items],
                    "user_id": user_id,
                    "order_id": order_id,
                    "return_url": self._return_url,
                },
            )
        except GatewayError as exc:
            logger.error("Payment session creation failed for order %s: %s", order_id, exc)
            raise CheckoutError("Failed to initialize payment") from exc

        url = checkout.get("url") if isinstance(checkout, dict) else None
        if not url or not isinstance(url, str):
            raise CheckoutError("No checkout URL returned from payment provider")

        self.checkout_url = url
        self._persist()
        return CheckoutResult(url=url, order_id=order_id)

    def _persist(self) -> None:
        self._storage.save(CartState(items=self.items, checkout_url=self.checkout_url))
