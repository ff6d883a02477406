"""Typed read queries behind the portal's aggregated profile.

Each function issues exactly one gateway query bound to the caller's
cancellation token and raises on failure.
"""

from typing import Optional

from libs.common.cancellation import CancellationToken
from libs.gateway.base import DataGateway, OrderBy, eq, neq
from services.portal_service.schemas import (
    ClientDocument,
    FormSubmission,
    Membership,
    MembershipStatus,
    Order,
    Purchase,
    UserProfile,
)

PENDING_ORDER_STATUS = "Pending"
RECENT_PURCHASES_LIMIT = 10


async def get_user_profile(
    gateway: DataGateway, user_id: str, token: Optional[CancellationToken] = None
) -> Optional[UserProfile]:
    row = await gateway.read_one(
        "profiles",
        [eq("user_id", user_id)],
        columns="full_name, email, phone",
        token=token,
    )
    return UserProfile.model_validate(row) if row else None


async def get_submissions(
    gateway: DataGateway, user_id: str, token: Optional[CancellationToken] = None
) -> list[FormSubmission]:
    rows = await gateway.read_many(
        "coach_intake_forms",
        [eq("user_id", user_id)],
        columns="id, specialty, status, submitted_at",
        order=OrderBy("submitted_at"),
        token=token,
    )
    return [FormSubmission.model_validate(row) for row in rows]


async def get_orders(
    gateway: DataGateway, user_id: str, token: Optional[CancellationToken] = None
) -> list[Order]:
    """Orders the user has completed checkout for; pending ones are hidden."""
    rows = await gateway.read_many(
        "orders",
        [eq("customer_id", user_id), neq("status", PENDING_ORDER_STATUS)],
        columns="*, order_items(*)",
        order=OrderBy("created_at"),
        token=token,
    )
    return [Order.model_validate(row) for row in rows]


async def find_linked_client_id(
    gateway: DataGateway, user_id: str, token: Optional[CancellationToken] = None
) -> Optional[str]:
    """Return the CRM client id linked to ``user_id``, or None when unlinked."""
    row = await gateway.read_one(
        "crm_clients", [eq("user_id", user_id)], columns="id", token=token
    )
    return row["id"] if row else None


async def get_active_membership(
    gateway: DataGateway, client_id: str, token: Optional[CancellationToken] = None
) -> Optional[Membership]:
    rows = await gateway.read_many(
        "crm_memberships",
        [eq("client_id", client_id), eq("status", MembershipStatus.ACTIVE.value)],
        order=OrderBy("start_date"),
        limit=1,
        token=token,
    )
    return Membership.model_validate(rows[0]) if rows else None


async def get_recent_purchases(
    gateway: DataGateway, client_id: str, token: Optional[CancellationToken] = None
) -> list[Purchase]:
    rows = await gateway.read_many(
        "crm_purchases",
        [eq("client_id", client_id)],
        order=OrderBy("purchased_at"),
        limit=RECENT_PURCHASES_LIMIT,
        token=token,
    )
    return [Purchase.model_validate(row) for row in rows]


async def get_shared_documents(
    gateway: DataGateway, client_id: str, token: Optional[CancellationToken] = None
) -> list[ClientDocument]:
    rows = await gateway.read_many(
        "crm_documents",
        [eq("client_id", client_id), eq("shared_with_client", True)],
        order=OrderBy("created_at"),
        token=token,
    )
    return [ClientDocument.model_validate(row) for row in rows]
