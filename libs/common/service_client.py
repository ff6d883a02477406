"""Async HTTP client for calls between the portal services.

Some server functions the portal invokes by name are served by our own
FastAPI services rather than by Supabase Edge Functions. Calls forward the
caller's access token, so the target service authenticates the same user.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from libs.common.config import get_settings
from libs.common.errors import GatewayError
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

# Default timeout for internal calls (seconds).
_DEFAULT_TIMEOUT = 10.0

# Server function name -> (settings attribute holding the base URL, path).
SERVICE_FUNCTIONS: dict[str, tuple[str, str]] = {
    "create-checkout": ("PAYMENTS_SERVICE_URL", "/payments/create-checkout"),
    "verify-payment": ("PAYMENTS_SERVICE_URL", "/payments/verify-payment"),
}


def is_service_function(name: str) -> bool:
    return name in SERVICE_FUNCTIONS


async def internal_request(
    *,
    service_url: str,
    method: str,
    path: str,
    calling_service: str,
    access_token: Optional[str] = None,
    json: Any = None,
    params: Optional[dict] = None,
    timeout: float = _DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """Make an internal service-to-service HTTP call.

    Args:
        service_url: Base URL of the target service (e.g. settings.PAYMENTS_SERVICE_URL).
        method: HTTP method (GET, POST, DELETE, ...).
        path: URL path on the target service.
        calling_service: Name of the calling service, sent as ``X-Caller-Service``.
        access_token: Bearer token of the user the call is made for.
        json: Optional JSON body.
        params: Optional query parameters.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests route calls to an ASGI app).

    Raises:
        httpx.RequestError on connection failures.
    """
    url = f"{service_url.rstrip('/')}{path}"
    headers = {"X-Caller-Service": calling_service}
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.request(
            method,
            url,
            headers=headers,
            json=json,
            params=params,
        )
    return response


async def internal_post(
    *,
    service_url: str,
    path: str,
    calling_service: str,
    access_token: Optional[str] = None,
    json: Any = None,
    timeout: float = _DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.Response:
    """Convenience wrapper for POST requests."""
    return await internal_request(
        service_url=service_url,
        method="POST",
        path=path,
        calling_service=calling_service,
        access_token=access_token,
        json=json,
        timeout=timeout,
        transport=transport,
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return response.reason_phrase


# ---------------------------------------------------------------------------
# Server functions
# ---------------------------------------------------------------------------


async def invoke_service_function(
    name: str,
    payload: dict,
    *,
    access_token: Optional[str],
    calling_service: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """Invoke a server function served by one of our services.

    Returns the decoded JSON object. Transport failures, error statuses and
    bodies that are not a JSON object raise ``GatewayError``.
    """
    setting, path = SERVICE_FUNCTIONS[name]
    service_url = getattr(get_settings(), setting)
    try:
        response = await internal_post(
            service_url=service_url,
            path=path,
            calling_service=calling_service,
            access_token=access_token,
            json=payload,
            transport=transport,
        )
    except httpx.RequestError as exc:
        logger.error("Function %s unreachable at %s: %s", name, service_url, exc)
        raise GatewayError(f"Function {name} failed: {exc}") from exc

    if response.is_error:
        detail = _error_detail(response)
        logger.warning("Function %s returned %s: %s", name, response.status_code, detail)
        raise GatewayError(detail, details={"status_code": response.status_code})

    try:
        body = response.json()
    except ValueError as exc:
        raise GatewayError(f"Function {name} returned a non-JSON body") from exc
    if not isinstance(body, dict):
        raise GatewayError(f"Function {name} returned an unexpected body")
    return body
