"""Pydantic schemas for the payments service."""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CheckoutProduct(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str
    image_url: Optional[str] = None


class CheckoutPrice(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount: Decimal = Field(..., ge=0)


class CheckoutItem(BaseModel):
    """A cart line as sent by the store service."""

    model_config = ConfigDict(extra="ignore")

    product: CheckoutProduct
    variant_id: str
    variant_title: str = "Default Title"
    price: CheckoutPrice
    quantity: int = Field(..., ge=1)


class CreateCheckoutRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: List[CheckoutItem] = Field(default_factory=list)
    order_id: str
    return_url: str


class CheckoutSessionResponse(BaseModel):
    url: str
    id: str


class VerifyPaymentRequest(BaseModel):
    session_id: Optional[str] = None
    order_id: Optional[str] = None


class VerifyPaymentResponse(BaseModel):
    success: bool
    order_id: Optional[str] = None
    message: Optional[str] = None
    status: Optional[str] = None


class ReconcileResponse(BaseModel):
    abandoned_order_ids: List[str]
    count: int
