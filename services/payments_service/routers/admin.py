"""Admin payments router."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from libs.auth.dependencies import require_staff
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import hours_ago
from libs.gateway.base import DataGateway
from libs.gateway.dependencies import get_service_gateway
from services.payments_service.checkout import reconcile_pending_orders
from services.payments_service.schemas import ReconcileResponse

router = APIRouter(tags=["admin-payments"])


@router.post("/reconcile-pending", response_model=ReconcileResponse)
async def reconcile_pending(
    older_than_hours: Optional[float] = Query(None, gt=0),
    _staff: AuthUser = Depends(require_staff),
    gateway: DataGateway = Depends(get_service_gateway),
):
    """Abandon orders left Pending by checkouts that never reached payment."""
    hours = older_than_hours or get_settings().PENDING_ORDER_TTL_HOURS
    order_ids = await reconcile_pending_orders(gateway, hours_ago(hours))
    return ReconcileResponse(abandoned_order_ids=order_ids, count=len(order_ids))
