"""
Stripe API client for hosted checkout sessions.

Talks to the Stripe REST API directly over httpx. Stripe expects
form-encoded bodies with bracketed keys for nested values, e.g.
``line_items[0][price_data][currency]=usd``.
"""

from typing import Any, List, Optional, Tuple

import httpx

from libs.common.config import get_settings
from libs.common.logging import get_logger

logger = get_logger(__name__)


class StripeError(Exception):
    """Base exception for Stripe API errors."""

    def __init__(
        self, message: str, status_code: Optional[int] = None, response_data: Optional[dict] = None
    ):
        self.message = message
        self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(message)


def encode_form(data: dict, prefix: str = "") -> List[Tuple[str, str]]:
    """Flatten nested dicts and lists into Stripe's bracketed form fields."""
    fields: List[Tuple[str, str]] = []
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        fields.extend(_encode_value(name, value))
    return fields


def _encode_value(name: str, value: Any) -> List[Tuple[str, str]]:
    if value is None:
        return []
    if isinstance(value, dict):
        return encode_form(value, name)
    if isinstance(value, (list, tuple)):
        fields: List[Tuple[str, str]] = []
        for index, entry in enumerate(value):
            fields.extend(_encode_value(f"{name}[{index}]", entry))
        return fields
    if isinstance(value, bool):
        return [(name, "true" if value else "false")]
    return [(name, str(value))]


class StripeClient:
    """Async client for the Stripe Checkout Sessions API."""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        if not self.secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required")
        self.base_url = (base_url or settings.STRIPE_API_BASE).rstrip("/")
        self._transport = transport
        self._headers = {"Authorization": f"Bearer {self.secret_key}"}

    async def _request(self, method: str, endpoint: str, data: Optional[dict] = None) -> dict:
        """Make an async request to the Stripe API."""
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=30.0, transport=self._transport
        ) as client:
            response = await client.request(
                method=method,
                url=endpoint,
                headers=self._headers,
                data=encode_form(data) if data else None,
            )

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if not response.is_success:
            logger.error("Stripe API error: %s - %s", response.status_code, payload)
            error = payload.get("error") or {}
            raise StripeError(
                message=error.get("message", "Unknown Stripe error"),
                status_code=response.status_code,
                response_data=payload,
            )
        return payload

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    async def create_checkout_session(self, params: dict) -> dict:
        """
        Create a hosted checkout session.

        Returns the session object; ``url`` is where the customer pays.
        """
        return await self._request("POST", "/checkout/sessions", params)

    async def retrieve_checkout_session(self, session_id: str) -> dict:
        return await self._request("GET", f"/checkout/sessions/{session_id}")
