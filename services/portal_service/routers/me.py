"""Portal router: the signed-in user's aggregated profile."""

from fastapi import APIRouter, Depends, HTTPException, status

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from services.portal_service.container import PortalContainer
from services.portal_service.dependencies import get_portal
from services.portal_service.schemas import PortalMeResponse

router = APIRouter(tags=["portal"])


@router.get("/me", response_model=PortalMeResponse)
async def get_my_portal(
    current_user: AuthUser = Depends(get_current_user),
    portal: PortalContainer = Depends(get_portal),
):
    """Return profile, membership, purchases, documents and orders for the caller."""
    await portal.user_context.wait_idle()
    session = portal.auth.user
    if session is None or session.user_id != current_user.user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired"
        )

    return PortalMeResponse(
        user_id=session.user_id,
        email=session.email,
        role=portal.auth.role,
        is_staff=portal.auth.is_staff,
        view=portal.user_context.view,
    )
