"""Composition root for one portal application session.

Build one ``PortalContainer`` per signed-in browser session (or per request
on the server) and pass its services down explicitly:

    async with PortalContainer(gateway) as portal:
        await portal.user_context.wait_idle()
        view = portal.user_context.view
"""

from typing import Any, Optional

from libs.common.notifications import Notifier
from libs.gateway.base import DataGateway
from services.portal_service.activity_log import ActivityLogger
from services.portal_service.auth_session import AuthSessionManager
from services.portal_service.crm_collections import (
    CrmCollection,
    DocumentsCollection,
    EnrollmentsCollection,
    clients_collection,
    enrollments_collection,
    memberships_collection,
    purchases_collection,
)
from services.portal_service.saved_views import SavedViewsStore
from services.portal_service.schemas import CRMClient, CRMMembership, CRMPurchase
from services.portal_service.user_context import UserContext


class PortalContainer:
    def __init__(
        self,
        gateway: DataGateway,
        *,
        notifier: Optional[Notifier] = None,
        user_agent: Optional[str] = None,
        fetch_timeout: Optional[float] = None,
        role_timeout: Optional[float] = None,
    ) -> None:
        self.gateway = gateway
        self.notifier = notifier or Notifier()
        self.auth = AuthSessionManager(gateway, role_timeout=role_timeout)
        # Subscribes to auth before start() so the first session is seen.
        self.user_context = UserContext(gateway, self.auth, fetch_timeout=fetch_timeout)
        self.activity = ActivityLogger(gateway, self.auth, user_agent=user_agent)

    async def start(self) -> "PortalContainer":
        await self.auth.start()
        return self

    async def aclose(self) -> None:
        await self.user_context.aclose()
        await self.auth.aclose()

    async def __aenter__(self) -> "PortalContainer":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def clients(self, *, realtime: bool = False) -> CrmCollection[CRMClient]:
        return clients_collection(self.gateway, self.notifier, realtime=realtime)

    def memberships(
        self, client_id: Optional[str] = None, *, realtime: bool = False
    ) -> CrmCollection[CRMMembership]:
        return memberships_collection(
            self.gateway, self.notifier, client_id, realtime=realtime
        )

    def purchases(
        self, client_id: Optional[str] = None, *, realtime: bool = False
    ) -> CrmCollection[CRMPurchase]:
        return purchases_collection(
            self.gateway, self.notifier, client_id, realtime=realtime
        )

    def documents(
        self, client_id: Optional[str] = None, *, realtime: bool = False
    ) -> DocumentsCollection:
        return DocumentsCollection(
            self.gateway, self.notifier, scope=client_id, realtime=realtime
        )

    def enrollments(
        self, campaign_id: Optional[str] = None, *, realtime: bool = False
    ) -> EnrollmentsCollection:
        return enrollments_collection(
            self.gateway, self.notifier, campaign_id, realtime=realtime
        )

    def saved_views(self) -> SavedViewsStore:
        return SavedViewsStore(self.gateway, self.auth, self.notifier)
