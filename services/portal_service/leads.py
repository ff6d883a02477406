"""Lead capture from website form webhooks.

Form builders post leads in different shapes: flat (``email``, ``name``),
capitalised (``Email``, ``Name``), nested under ``data``, or split into
``firstName`` / ``lastName``. ``normalize_lead`` folds them into one
``LeadData``; ``create_lead`` stores it as a CRM client with marketing
status ``lead`` unless a client with that email already exists.
"""

from dataclasses import dataclass
from typing import Any, Optional

from libs.common.errors import InvalidPayloadError
from libs.common.logging import get_logger
from libs.gateway.base import DataGateway, eq
from services.portal_service.schemas import LeadData, MarketingStatus

logger = get_logger(__name__)

DEFAULT_LEAD_SOURCE = "webflow"
DEFAULT_LEAD_TAG = "webflow-lead"


@dataclass(frozen=True)
class LeadResult:
    client_id: str
    duplicate: bool


def _first(*values: Any) -> Optional[str]:
    for value in values:
        if value:
            return str(value)
    return None


def normalize_lead(body: dict[str, Any]) -> LeadData:
    nested = body.get("data") if isinstance(body.get("data"), dict) else {}

    email = _first(body.get("email"), body.get("Email"), nested.get("email"))
    if not email:
        raise InvalidPayloadError("Email is required")
    email = email.strip().lower()

    split_name = " ".join(
        str(part) for part in (body.get("firstName"), body.get("lastName")) if part
    )
    full_name = _first(
        body.get("full_name"),
        body.get("name"),
        body.get("Name"),
        nested.get("name"),
        split_name,
    )
    if not full_name or not full_name.strip():
        full_name = email.split("@")[0]

    tags = body.get("tags")
    if not isinstance(tags, list) or not tags:
        form_name = body.get("form_name")
        tags = [str(form_name)] if form_name else [DEFAULT_LEAD_TAG]

    return LeadData(
        email=email,
        full_name=full_name.strip(),
        phone=_first(body.get("phone"), body.get("Phone"), nested.get("phone")),
        lead_source=_first(body.get("lead_source"), body.get("source"))
        or DEFAULT_LEAD_SOURCE,
        referral_source=_first(
            body.get("referral_source"), body.get("referral"), body.get("utm_source")
        ),
        health_goals=_first(
            body.get("health_goals"),
            body.get("goals"),
            body.get("message"),
            body.get("Message"),
        ),
        notes=_first(body.get("notes"), body.get("additional_info")),
        tags=[str(tag) for tag in tags],
    )


async def create_lead(gateway: DataGateway, lead: LeadData) -> LeadResult:
    """Insert ``lead`` as a CRM client, or report the existing client."""
    existing = await gateway.read_one(
        "crm_clients", [eq("email", lead.email)], columns="id, email"
    )
    if existing is not None:
        logger.info("Lead %s already exists as client %s", lead.email, existing["id"])
        return LeadResult(client_id=str(existing["id"]), duplicate=True)

    row = await gateway.insert(
        "crm_clients",
        {**lead.model_dump(), "marketing_status": MarketingStatus.LEAD.value},
    )
    logger.info("Created lead %s as client %s", lead.email, row["id"])
    return LeadResult(client_id=str(row["id"]), duplicate=False)
