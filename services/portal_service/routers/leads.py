"""Lead capture webhook (no user auth; verified by a shared secret)."""

import hmac
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Response, status

from libs.common.config import get_settings
from libs.common.errors import GatewayError
from libs.common.logging import get_logger
from libs.gateway.base import DataGateway
from libs.gateway.dependencies import get_service_gateway
from services.portal_service.leads import create_lead, normalize_lead
from services.portal_service.schemas import LeadWebhookResponse

router = APIRouter(tags=["leads"])
logger = get_logger(__name__)


def _secret_matches(received: Optional[str]) -> bool:
    expected = get_settings().WEBHOOK_SECRET
    if not expected:
        return True
    return hmac.compare_digest(expected.encode(), (received or "").encode())


@router.post("/leads/webhook", response_model=LeadWebhookResponse)
async def lead_webhook(
    response: Response,
    payload: dict[str, Any] = Body(...),
    x_webhook_secret: Optional[str] = Header(None),
    gateway: DataGateway = Depends(get_service_gateway),
):
    """
    Create a CRM lead from a website form submission.

    Answers 201 for a new lead and 200 when the email is already a client.
    """
    if not _secret_matches(x_webhook_secret):
        logger.warning("Lead webhook called with an invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    lead = normalize_lead(payload)
    try:
        result = await create_lead(gateway, lead)
    except GatewayError as exc:
        logger.error("Error creating lead %s: %s", lead.email, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create lead",
        )

    if result.duplicate:
        response.status_code = status.HTTP_200_OK
        return LeadWebhookResponse(
            message="Client already exists", client_id=result.client_id, duplicate=True
        )
    response.status_code = status.HTTP_201_CREATED
    return LeadWebhookResponse(
        message="Lead created successfully", client_id=result.client_id, duplicate=False
    )
