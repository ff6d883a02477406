"""Pydantic schemas for the store service."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ============================================================================
# CART SCHEMAS
# ============================================================================


class ProductRef(BaseModel):
    id: str
    title: str
    image_url: Optional[str] = None


class Money(BaseModel):
    amount: Decimal = Field(..., ge=0)
    currency_code: str = "USD"


class SelectedOption(BaseModel):
    name: str
    value: str


CartKey = tuple[str, Optional[str]]


class CartItem(BaseModel):
    """One cart line; lines are identified by (variant_id, selling_plan_id)."""

    model_config = ConfigDict(frozen=True)

    product: ProductRef
    variant_id: str
    variant_title: str = "Default Title"
    price: Money
    quantity: int = Field(..., ge=1)
    selected_options: list[SelectedOption] = Field(default_factory=list)
    selling_plan_id: Optional[str] = None
    selling_plan_name: Optional[str] = None

    @property
    def key(self) -> CartKey:
        return (self.variant_id, self.selling_plan_id)

    @property
    def line_total(self) -> Decimal:
        return self.price.amount * self.quantity


class CartState(BaseModel):
    """What survives between sessions."""

    items: list[CartItem] = Field(default_factory=list)
    checkout_url: Optional[str] = None


class CartResponse(BaseModel):
    items: list[CartItem]
    total_items: int
    total_price: Decimal
    checkout_url: Optional[str] = None


class CartQuantityUpdate(BaseModel):
    quantity: int
    selling_plan_id: Optional[str] = None


# ============================================================================
# CHECKOUT SCHEMAS
# ============================================================================


class CheckoutResult(BaseModel):
    url: str
    order_id: str
