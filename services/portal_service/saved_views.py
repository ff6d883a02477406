"""Saved CRM dashboard views, private to the signed-in staff member.

Each view stores a date range (and optional comparison range) for the
analytics dashboard. At most one view per user is the default.

Failures never raise: they are logged, reported through the notifier, and
signalled by a ``None`` / ``False`` return.
"""

from typing import List, Optional

from libs.common.errors import GatewayError
from libs.common.logging import get_logger
from libs.common.notifications import Notifier
from libs.gateway.base import DataGateway, OrderBy, Record, eq, neq
from services.portal_service.auth_session import AuthSessionManager
from services.portal_service.schemas import SavedView, SavedViewConfig

logger = get_logger(__name__)

TABLE = "crm_saved_views"


class SavedViewsStore:
    def __init__(
        self, gateway: DataGateway, auth: AuthSessionManager, notifier: Notifier
    ) -> None:
        self._gateway = gateway
        self._auth = auth
        self._notifier = notifier
        self.views: List[SavedView] = []
        self.loading = True

    @property
    def _user_id(self) -> Optional[str]:
        session = self._auth.user
        return session.user_id if session else None

    @property
    def default_view(self) -> Optional[SavedView]:
        return next((view for view in self.views if view.is_default), None)

    async def fetch_views(self) -> List[SavedView]:
        user_id = self._user_id
        if user_id is None:
            self.views = []
            self.loading = False
            return self.views

        try:
            rows = await self._gateway.read_many(
                TABLE, [eq("user_id", user_id)], order=OrderBy("created_at")
            )
        except GatewayError as exc:
            logger.error("Error fetching saved views for %s: %s", user_id, exc)
            self._notifier.error("Failed to load saved views")
        else:
            self.views = [SavedView.model_validate(row) for row in rows]
        finally:
            self.loading = False
        return self.views

    async def create_view(
        self,
        name: str,
        config: SavedViewConfig,
        description: Optional[str] = None,
    ) -> Optional[SavedView]:
        user_id = self._user_id
        if user_id is None:
            self._notifier.error("You must be logged in to save views")
            return None

        try:
            row = await self._gateway.insert(
                TABLE,
                {
                    "user_id": user_id,
                    "name": name,
                    "description": description or None,
                    "config": config.model_dump(mode="json", by_alias=True),
                    "is_default": False,
                },
            )
        except GatewayError as exc:
            logger.error("Error creating view for %s: %s", user_id, exc)
            self._notifier.error("Failed to save view")
            return None

        view = SavedView.model_validate(row)
        self.views = [view, *self.views]
        self._notifier.success("View saved successfully")
        return view

    async def update_view(self, view_id: str, patch: Record) -> bool:
        """Apply ``patch`` (name, description, config, is_default) to one view.

        Making a view the default first clears the flag on the user's others.
        """
        user_id = self._user_id
        if user_id is None:
            self._notifier.error("You must be logged in to update views")
            return False

        try:
            if patch.get("is_default"):
                await self._gateway.update(
                    TABLE,
                    [eq("user_id", user_id), neq("id", view_id)],
                    {"is_default": False},
                )
            await self._gateway.update(
                TABLE, [eq("id", view_id), eq("user_id", user_id)], patch
            )
        except GatewayError as exc:
            logger.error("Error updating view %s: %s", view_id, exc)
            self._notifier.error("Failed to update view")
            return False

        updated = []
        for view in self.views:
            if view.id == view_id:
                view = SavedView.model_validate({**view.model_dump(), **patch})
            elif patch.get("is_default"):
                view = view.model_copy(update={"is_default": False})
            updated.append(view)
        self.views = updated
        self._notifier.success("View updated")
        return True

    async def delete_view(self, view_id: str) -> bool:
        user_id = self._user_id
        if user_id is None:
            self._notifier.error("You must be logged in to delete views")
            return False

        try:
            await self._gateway.delete(TABLE, [eq("id", view_id), eq("user_id", user_id)])
        except GatewayError as exc:
            logger.error("Error deleting view %s: %s", view_id, exc)
            self._notifier.error("Failed to delete view")
            return False

        self.views = [view for view in self.views if view.id != view_id]
        self._notifier.success("View deleted")
        return True
