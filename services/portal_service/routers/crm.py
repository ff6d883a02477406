"""CRM router: staff-facing clients, memberships, purchases, campaign enrollments and saved views."""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from libs.auth.dependencies import require_staff
from libs.auth.models import AuthUser
from services.portal_service.activity_log import CRMAction, CRMResourceType
from services.portal_service.container import PortalContainer
from services.portal_service.crm_collections import CrmCollection
from services.portal_service.dependencies import get_portal
from services.portal_service.schemas import (
    CRMCampaignEnrollment,
    CRMCampaignEnrollmentCreate,
    CRMClient,
    CRMClientCreate,
    CRMClientUpdate,
    CRMMembership,
    CRMMembershipCreate,
    CRMMembershipUpdate,
    CRMPurchase,
    CRMPurchaseCreate,
    SavedView,
    SavedViewCreate,
    SavedViewUpdate,
)

router = APIRouter(tags=["crm"])


def _raise_last_error(portal: PortalContainer) -> None:
    failure = portal.notifier.last_error
    if failure is not None:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=failure.message)


async def _load(portal: PortalContainer, collection: CrmCollection) -> list:
    await collection.fetch_items()
    _raise_last_error(portal)
    return collection.items


# ============================================================================
# CLIENTS
# ============================================================================


@router.get("/clients", response_model=list[CRMClient])
async def list_clients(
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    """List CRM clients, newest first."""
    clients = await _load(portal, portal.clients())
    await portal.activity.log_activity(CRMAction.VIEW_CLIENTS, CRMResourceType.CLIENT)
    return clients


@router.post("/clients", response_model=CRMClient, status_code=status.HTTP_201_CREATED)
async def create_client(
    payload: CRMClientCreate,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    client = await portal.clients().create(payload.model_dump(mode="json"))
    await portal.activity.log_activity(
        CRMAction.CREATE_CLIENT, CRMResourceType.CLIENT, resource_id=client.id
    )
    return client


@router.patch("/clients/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_client(
    client_id: str,
    payload: CRMClientUpdate,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    patch = payload.model_dump(mode="json", exclude_unset=True)
    if not patch:
        raise HTTPException(status_code=400, detail="Nothing to update")
    await portal.clients().update(client_id, patch)
    await portal.activity.log_activity(
        CRMAction.UPDATE_CLIENT,
        CRMResourceType.CLIENT,
        resource_id=client_id,
        details={"fields": sorted(patch)},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/clients/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    client_id: str,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    await portal.clients().delete(client_id)
    await portal.activity.log_activity(
        CRMAction.DELETE_CLIENT, CRMResourceType.CLIENT, resource_id=client_id
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# MEMBERSHIPS
# ============================================================================


@router.get("/clients/{client_id}/memberships", response_model=list[CRMMembership])
async def list_client_memberships(
    client_id: str,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    memberships = await _load(portal, portal.memberships(client_id))
    await portal.activity.log_activity(
        CRMAction.VIEW_MEMBERSHIPS, CRMResourceType.MEMBERSHIP, resource_id=client_id
    )
    return memberships


@router.post(
    "/memberships", response_model=CRMMembership, status_code=status.HTTP_201_CREATED
)
async def create_membership(
    payload: CRMMembershipCreate,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    membership = await portal.memberships(payload.client_id).create(
        payload.model_dump(mode="json")
    )
    await portal.activity.log_activity(
        CRMAction.CREATE_MEMBERSHIP,
        CRMResourceType.MEMBERSHIP,
        resource_id=membership.id,
        details={"client_id": payload.client_id, "tier": payload.tier.value},
    )
    return membership


@router.patch("/memberships/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_membership(
    membership_id: str,
    payload: CRMMembershipUpdate,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    patch = payload.model_dump(mode="json", exclude_unset=True)
    if not patch:
        raise HTTPException(status_code=400, detail="Nothing to update")
    await portal.memberships().update(membership_id, patch)
    await portal.activity.log_activity(
        CRMAction.UPDATE_MEMBERSHIP,
        CRMResourceType.MEMBERSHIP,
        resource_id=membership_id,
        details={"fields": sorted(patch)},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# PURCHASES
# ============================================================================


@router.get("/clients/{client_id}/purchases", response_model=list[CRMPurchase])
async def list_client_purchases(
    client_id: str,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    purchases = await _load(portal, portal.purchases(client_id))
    await portal.activity.log_activity(
        CRMAction.VIEW_PURCHASES, CRMResourceType.PURCHASE, resource_id=client_id
    )
    return purchases


@router.post("/purchases", response_model=CRMPurchase, status_code=status.HTTP_201_CREATED)
async def create_purchase(
    payload: CRMPurchaseCreate,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    record = payload.model_dump(mode="json", exclude_none=True)
    purchase = await portal.purchases(payload.client_id).create(record)
    await portal.activity.log_activity(
        CRMAction.CREATE_PURCHASE,
        CRMResourceType.PURCHASE,
        resource_id=purchase.id,
        details={"client_id": payload.client_id, "amount": record["amount"]},
    )
    return purchase


# ============================================================================
# CAMPAIGN ENROLLMENTS
# ============================================================================


@router.get(
    "/campaigns/{campaign_id}/enrollments", response_model=list[CRMCampaignEnrollment]
)
async def list_campaign_enrollments(
    campaign_id: str,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    enrollments = await _load(portal, portal.enrollments(campaign_id))
    await portal.activity.log_activity(
        CRMAction.VIEW_CAMPAIGNS, CRMResourceType.CAMPAIGN, resource_id=campaign_id
    )
    return enrollments


@router.post(
    "/campaigns/{campaign_id}/enrollments",
    response_model=CRMCampaignEnrollment,
    status_code=status.HTTP_201_CREATED,
)
async def enroll_client(
    campaign_id: str,
    payload: CRMCampaignEnrollmentCreate,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    enrollment = await portal.enrollments(campaign_id).enroll_client(
        campaign_id, payload.client_id
    )
    await portal.activity.log_activity(
        CRMAction.UPDATE_CAMPAIGN,
        CRMResourceType.CAMPAIGN,
        resource_id=campaign_id,
        details={"enrolled_client_id": payload.client_id},
    )
    return enrollment


# ============================================================================
# SAVED VIEWS
# ============================================================================


@router.get("/views", response_model=list[SavedView])
async def list_saved_views(
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    """The caller's saved dashboard views, newest first."""
    views = await portal.saved_views().fetch_views()
    _raise_last_error(portal)
    return views


@router.post("/views", response_model=SavedView, status_code=status.HTTP_201_CREATED)
async def create_saved_view(
    payload: SavedViewCreate,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    view = await portal.saved_views().create_view(
        payload.name, payload.config, payload.description
    )
    if view is None:
        _raise_last_error(portal)
    return view


@router.patch("/views/{view_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_saved_view(
    view_id: str,
    payload: SavedViewUpdate,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    patch = payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
    if not patch:
        raise HTTPException(status_code=400, detail="Nothing to update")
    if not await portal.saved_views().update_view(view_id, patch):
        _raise_last_error(portal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/views/{view_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_saved_view(
    view_id: str,
    _staff: AuthUser = Depends(require_staff),
    portal: PortalContainer = Depends(get_portal),
):
    if not await portal.saved_views().delete_view(view_id):
        _raise_last_error(portal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
