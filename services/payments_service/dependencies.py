from fastapi import HTTPException, status

from libs.common.logging import get_logger
from services.payments_service.stripe_client import StripeClient

logger = get_logger(__name__)


def get_stripe_client() -> StripeClient:
    """
    FastAPI dependency returning a Stripe client built from settings.
    """
    try:
        return StripeClient()
    except ValueError as exc:
        logger.error("Stripe is not configured: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payments are not configured",
        )
