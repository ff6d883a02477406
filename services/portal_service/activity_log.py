"""CRM activity audit trail."""

import enum
from typing import Any, Optional

from libs.common.errors import GatewayError
from libs.common.logging import get_logger
from libs.gateway.base import DataGateway
from services.portal_service.auth_session import AuthSessionManager

logger = get_logger(__name__)


class CRMAction(str, enum.Enum):
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_CLIENTS = "view_clients"
    VIEW_CLIENT_DETAIL = "view_client_detail"
    CREATE_CLIENT = "create_client"
    UPDATE_CLIENT = "update_client"
    DELETE_CLIENT = "delete_client"
    VIEW_MEMBERSHIPS = "view_memberships"
    CREATE_MEMBERSHIP = "create_membership"
    UPDATE_MEMBERSHIP = "update_membership"
    VIEW_PURCHASES = "view_purchases"
    CREATE_PURCHASE = "create_purchase"
    VIEW_DOCUMENTS = "view_documents"
    UPLOAD_DOCUMENT = "upload_document"
    DELETE_DOCUMENT = "delete_document"
    VIEW_CAMPAIGNS = "view_campaigns"
    CREATE_CAMPAIGN = "create_campaign"
    UPDATE_CAMPAIGN = "update_campaign"
    EXPORT_DATA = "export_data"
    LOGIN = "login"
    LOGOUT = "logout"


class CRMResourceType(str, enum.Enum):
    DASHBOARD = "dashboard"
    CLIENT = "client"
    MEMBERSHIP = "membership"
    PURCHASE = "purchase"
    DOCUMENT = "document"
    CAMPAIGN = "campaign"
    SESSION = "session"


class ActivityLogger:
    """Records who did what in the CRM. Never raises into the caller."""

    def __init__(
        self,
        gateway: DataGateway,
        auth: AuthSessionManager,
        user_agent: Optional[str] = None,
    ) -> None:
        self._gateway = gateway
        self._auth = auth
        self._user_agent = user_agent

    async def log_activity(
        self,
        action: CRMAction,
        resource_type: CRMResourceType,
        resource_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        session = self._auth.user
        if session is None:
            return
        try:
            await self._gateway.insert(
                "crm_activity_log",
                {
                    "user_id": session.user_id,
                    "user_email": session.email,
                    "user_role": self._auth.role.value if self._auth.role else None,
                    "action": action.value,
                    "resource_type": resource_type.value,
                    "resource_id": resource_id,
                    "details": details or {},
                    "user_agent": self._user_agent,
                },
            )
        except GatewayError as exc:
            logger.error("Failed to log activity %s: %s", action.value, exc)
