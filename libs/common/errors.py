"""Domain exceptions shared across the portal services."""

from typing import Optional


class PortalError(Exception):
    """Base class for errors that carry a user-facing message."""

    status_code = 400

    def __init__(self, message: str, *, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class GatewayError(PortalError):
    """A remote data gateway call failed (network, RLS, constraint...)."""

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.code = code
        super().__init__(message, details=details)


class AuthError(PortalError):
    """Sign-in, sign-up or a session requirement failed."""

    status_code = 401


class CheckoutError(PortalError):
    """Order submission or payment session creation failed."""

    status_code = 400


class InvalidPayloadError(PortalError):
    """An inbound payload is missing something it cannot do without."""

    status_code = 400
