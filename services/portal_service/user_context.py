"""Aggregated profile loader for the signed-in user.

``UserContext`` owns the user's profile, membership, purchases, intake form
submissions, shared documents and orders, and rebuilds them in *fetch
cycles*. Each cycle owns one ``CancellationToken``; results are committed only
while that token is still the current, uncancelled one, so a slow cycle that
was superseded by a newer one (or by sign-out, or by ``aclose()``) can never
overwrite fresher state.
"""

import asyncio
from typing import Callable, List, Optional, Set

from libs.auth.models import Session
from libs.common.cancellation import CancellationToken, OperationCancelled
from libs.common.config import get_settings
from libs.common.logging import get_logger
from libs.gateway.base import DataGateway
from services.portal_service import api
from services.portal_service.auth_session import AuthSessionManager
from services.portal_service.schemas import (
    AggregatedProfileView,
    ClientDocument,
    FormSubmission,
    Membership,
    Order,
    Purchase,
    UserProfile,
)

logger = get_logger(__name__)

ViewListener = Callable[[AggregatedProfileView], None]


class UserContext:
    def __init__(
        self,
        gateway: DataGateway,
        auth: AuthSessionManager,
        *,
        fetch_timeout: Optional[float] = None,
    ) -> None:
        self._gateway = gateway
        self._auth = auth
        self._timeout = (
            fetch_timeout
            if fetch_timeout is not None
            else get_settings().PROFILE_FETCH_TIMEOUT_SECONDS
        )

        self._profile: Optional[UserProfile] = None
        self._membership: Optional[Membership] = None
        self._purchases: List[Purchase] = []
        self._submissions: List[FormSubmission] = []
        self._documents: List[ClientDocument] = []
        self._orders: List[Order] = []

        self._fetching = False
        self._initialized = False
        self._token: Optional[CancellationToken] = None
        self._tasks: Set[asyncio.Task] = set()
        self._listeners: List[ViewListener] = []
        self._closed = False
        self._unsubscribe_auth = auth.subscribe(self._on_user_changed)

    @property
    def loading(self) -> bool:
        # A session whose first cycle has not finished counts as loading.
        return self._fetching or (
            self._auth.user_id is not None and not self._initialized
        )

    @property
    def view(self) -> AggregatedProfileView:
        return AggregatedProfileView(
            profile=self._profile,
            membership=self._membership,
            purchases=list(self._purchases),
            submissions=list(self._submissions),
            documents=list(self._documents),
            orders=list(self._orders),
            loading=self.loading,
        )

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self) -> None:
        """Kick off a cycle for a session that existed before construction."""
        if self._auth.user_id is not None:
            self._schedule_cycle()

    async def refresh_data(self) -> None:
        """Run a new fetch cycle now, superseding any in-flight one."""
        await self._fetch()

    async def wait_idle(self) -> None:
        """Wait for every scheduled cycle to finish."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.wait(pending)

    async def aclose(self) -> None:
        """Tear down: abort the in-flight cycle and refuse later commits."""
        self._closed = True
        self._unsubscribe_auth()
        if self._token is not None:
            self._token.cancel("closed")
        await self.wait_idle()
        self._listeners.clear()

    def _on_user_changed(self, session: Optional[Session]) -> None:
        self._schedule_cycle()

    def _schedule_cycle(self) -> None:
        if self._closed:
            return
        # Cancel synchronously so the old cycle cannot commit before the
        # new task gets to run.
        if self._token is not None:
            self._token.cancel("superseded")
        task = asyncio.ensure_future(self._fetch())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch(self) -> None:
        if self._token is not None:
            self._token.cancel("superseded")

        session = self._auth.user
        if session is None:
            self._token = None
            if not self._closed:
                self._reset()
                self._fetching = False
                self._emit()
            return

        token = CancellationToken()
        self._token = token
        timer = asyncio.get_running_loop().call_later(
            self._timeout, self._on_timeout, token
        )
        self._fetching = True
        self._emit()

        user_id = session.user_id
        try:
            profile, submissions, orders, client_id = await asyncio.gather(
                api.get_user_profile(self._gateway, user_id, token),
                api.get_submissions(self._gateway, user_id, token),
                api.get_orders(self._gateway, user_id, token),
                api.find_linked_client_id(self._gateway, user_id, token),
            )

            membership: Optional[Membership] = None
            purchases: List[Purchase] = []
            documents: List[ClientDocument] = []
            if client_id:
                membership, purchases, documents = await asyncio.gather(
                    api.get_active_membership(self._gateway, client_id, token),
                    api.get_recent_purchases(self._gateway, client_id, token),
                    api.get_shared_documents(self._gateway, client_id, token),
                )

            if self._closed or token.cancelled or self._token is not token:
                return

            self._profile = profile
            self._membership = membership
            self._purchases = purchases
            self._submissions = submissions
            self._documents = documents
            self._orders = orders
            self._initialized = True
        except OperationCancelled:
            pass
        except Exception:
            logger.exception("Error fetching portal data for user %s", user_id)
        finally:
            timer.cancel()
            # Aborts reads still running after a sibling in the batch failed.
            token.cancel("finished")
            if not self._closed and self._token is token:
                self._fetching = False
                self._initialized = True
                self._token = None
                self._emit()

    def _on_timeout(self, token: CancellationToken) -> None:
        if not token.cancelled:
            logger.warning(
                "Portal data fetch timed out after %.1fs, aborting", self._timeout
            )
            token.cancel("timeout")

    def _reset(self) -> None:
        self._profile = None
        self._membership = None
        self._purchases = []
        self._submissions = []
        self._documents = []
        self._orders = []

    def _emit(self) -> None:
        if not self._listeners:
            return
        view = self.view
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Profile view listener failed")
