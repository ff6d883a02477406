"""Auth session manager: tracks the signed-in session and the caller's role.

State machine:

    INITIALIZING -> UNAUTHENTICATED      no stored session
    INITIALIZING -> AUTHENTICATED        session found, role resolved
    AUTHENTICATED -> UNAUTHENTICATED     signed out / session gone

Listeners registered with ``subscribe`` hear about *identity* changes only.
A token refresh for the same user swaps the session object silently so the
profile loader does not restart.
"""

import asyncio
import enum
from typing import Callable, List, Optional

from libs.auth.models import AuthEvent, Session, UserRole, is_staff_role
from libs.common.config import get_settings
from libs.common.errors import GatewayError
from libs.common.logging import get_logger
from libs.gateway.base import DataGateway

logger = get_logger(__name__)

UserListener = Callable[[Optional[Session]], None]


class AuthStatus(str, enum.Enum):
    INITIALIZING = "initializing"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class AuthSessionManager:
    def __init__(
        self, gateway: DataGateway, *, role_timeout: Optional[float] = None
    ) -> None:
        self._gateway = gateway
        self._role_timeout = (
            role_timeout
            if role_timeout is not None
            else get_settings().ROLE_FETCH_TIMEOUT_SECONDS
        )
        self.status = AuthStatus.INITIALIZING
        self.session: Optional[Session] = None
        self.role: Optional[UserRole] = None
        self.loading = True
        self.role_loading = False

        # Last identity announced to listeners; compared against incoming
        # events instead of ``self.session``, which may already be replaced.
        self._user_id: Optional[str] = None
        self._listeners: List[UserListener] = []
        self._role_task: Optional[asyncio.Task] = None
        self._unsubscribe_gateway: Optional[Callable[[], None]] = None
        self._closed = False

    @property
    def user(self) -> Optional[Session]:
        return self.session

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_staff(self) -> bool:
        return is_staff_role(self.role)

    def subscribe(self, listener: UserListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def start(self) -> None:
        """Load any stored session and resolve its role."""
        self._unsubscribe_gateway = self._gateway.on_auth_event(self.handle_auth_event)
        try:
            session = await self._gateway.get_session()
        except GatewayError as exc:
            logger.error("Error initializing session: %s", exc)
            session = None

        if self._closed:
            return

        if session is None:
            if self._user_id is None:
                self.status = AuthStatus.UNAUTHENTICATED
        else:
            self.handle_auth_event(AuthEvent.INITIAL_SESSION, session)

        if self._role_task is not None:
            # wait() rather than await so a superseded lookup does not
            # propagate its cancellation into start().
            await asyncio.wait({self._role_task})
        self.loading = False

    def handle_auth_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        if self._closed:
            return

        if session is None:
            self._clear_session()
            return

        if event is AuthEvent.TOKEN_REFRESHED and session.user_id == self._user_id:
            self.session = session.model_copy(update={"role": self.role})
            return

        previous_user_id = self._user_id
        user_changed = session.user_id != previous_user_id

        if user_changed:
            self._user_id = session.user_id
            self.role = None
        self.session = session.model_copy(update={"role": self.role})
        self.status = AuthStatus.AUTHENTICATED

        if user_changed:
            logger.info("Auth user changed via %s", event.value)
            self._notify()

        if user_changed or self.role is None or event is AuthEvent.SIGNED_IN:
            self._start_role_resolution(session.user_id)

    async def sign_in(self, email: str, password: str) -> Session:
        return await self._gateway.sign_in(email, password)

    async def sign_up(
        self, email: str, password: str, full_name: str
    ) -> Optional[Session]:
        return await self._gateway.sign_up(
            email, password, metadata={"full_name": full_name}
        )

    async def sign_out(self) -> None:
        await self._gateway.sign_out()

    async def aclose(self) -> None:
        self._closed = True
        if self._unsubscribe_gateway is not None:
            self._unsubscribe_gateway()
            self._unsubscribe_gateway = None
        await self._cancel_role_task()
        self._listeners.clear()

    def _clear_session(self) -> None:
        had_user = self._user_id is not None
        self._user_id = None
        self.session = None
        self.role = None
        self.role_loading = False
        self.loading = False
        self.status = AuthStatus.UNAUTHENTICATED
        if self._role_task is not None:
            self._role_task.cancel()
            self._role_task = None
        if had_user:
            logger.info("Auth session cleared")
            self._notify()

    def _start_role_resolution(self, user_id: str) -> None:
        if self._role_task is not None and not self._role_task.done():
            self._role_task.cancel()
        self.role_loading = True
        self._role_task = asyncio.ensure_future(self._resolve_role(user_id))

    async def _resolve_role(self, user_id: str) -> None:
        try:
            raw_role = await asyncio.wait_for(
                self._gateway.rpc("get_user_role", {"_user_id": user_id}),
                timeout=self._role_timeout,
            )
            role = UserRole(raw_role)
        except (asyncio.TimeoutError, GatewayError, ValueError) as exc:
            logger.error("Error fetching role for %s: %r", user_id, exc)
            # Least privileged role when the lookup fails.
            role = UserRole.CLIENT

        if self._closed or self._user_id != user_id:
            return
        self.role = role
        if self.session is not None:
            self.session = self.session.model_copy(update={"role": role})
        self.role_loading = False

    async def _cancel_role_task(self) -> None:
        task, self._role_task = self._role_task, None
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.wait({task})

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self.session)
            except Exception:
                logger.exception("Auth listener failed")
