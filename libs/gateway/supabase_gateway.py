"""Supabase implementation of the remote data gateway."""

from __future__ import annotations

import inspect
import json
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Sequence, Union

import httpx
from supabase import (
    AsyncClient,
    AuthError as SupabaseAuthError,
    FunctionsError,
    PostgrestAPIError,
    StorageException,
    acreate_client,
)

from libs.auth.models import AuthEvent, Session
from libs.common.cancellation import CancellationToken, run_with_token
from libs.common.config import Settings, get_settings
from libs.common.errors import AuthError, GatewayError
from libs.common.logging import get_logger
from libs.common.service_client import invoke_service_function, is_service_function
from libs.gateway.base import (
    AuthCallback,
    ChangeCallback,
    ChangeEvent,
    ChangeType,
    Condition,
    DataGateway,
    OrderBy,
    Record,
    Subscription,
)

logger = get_logger(__name__)


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    """Re-raise client library failures as ``GatewayError``."""
    try:
        yield
    except PostgrestAPIError as exc:
        raise GatewayError(
            exc.message or f"{action} failed",
            code=exc.code,
            details={"hint": exc.hint, "details": exc.details},
        ) from exc
    except (StorageException, FunctionsError) as exc:
        raise GatewayError(f"{action} failed: {exc}") from exc
    except httpx.HTTPError as exc:
        raise GatewayError(f"{action} failed: {exc}") from exc


def _apply_filters(query: Any, filters: Sequence[Condition]) -> Any:
    for condition in filters:
        query = getattr(query, condition.op)(condition.column, condition.value)
    return query


def _to_session(raw: Any) -> Optional[Session]:
    if raw is None or getattr(raw, "user", None) is None:
        return None
    return Session(
        user_id=raw.user.id,
        email=raw.user.email,
        access_token=raw.access_token,
        refresh_token=getattr(raw, "refresh_token", None),
    )


def _to_change_event(table: str, payload: dict) -> ChangeEvent:
    """Normalise a realtime postgres_changes payload."""
    data = payload.get("data", payload)
    raw_type = data.get("type") or data.get("eventType") or ""
    return ChangeEvent(
        event_type=ChangeType(str(raw_type).lower()),
        table=table,
        record=data.get("record") or data.get("new") or {},
        old_record=data.get("old_record") or data.get("old") or {},
    )


class SupabaseSubscription(Subscription):
    def __init__(self, client: AsyncClient, channel: Any):
        self._client = client
        self._channel = channel
        self._closed = False

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._client.remove_channel(self._channel)


class SupabaseGateway(DataGateway):
    """Data gateway over the async Supabase client.

    When ``access_token`` is given the gateway acts on behalf of that user:
    table reads and writes run under their row level security and
    ``get_session()`` resolves the token instead of the local auth store.
    """

    def __init__(self, client: AsyncClient, access_token: Optional[str] = None):
        self._client = client
        self._access_token = access_token
        if access_token:
            client.postgrest.auth(access_token)
            client.functions.set_auth(access_token)

    @classmethod
    async def connect(
        cls,
        settings: Optional[Settings] = None,
        *,
        access_token: Optional[str] = None,
        service_role: bool = False,
    ) -> "SupabaseGateway":
        settings = settings or get_settings()
        key = (
            settings.SUPABASE_SERVICE_ROLE_KEY
            if service_role
            else settings.SUPABASE_ANON_KEY
        )
        client = await acreate_client(settings.SUPABASE_URL, key)
        return cls(client, access_token=access_token)

    # Tables ------------------------------------------------------------

    async def read_one(
        self,
        table: str,
        filters: Sequence[Condition],
        *,
        columns: str = "*",
        token: Optional[CancellationToken] = None,
    ) -> Optional[Record]:
        query = _apply_filters(self._client.table(table).select(columns), filters)
        with _translate_errors(f"Read {table}"):
            response = await run_with_token(query.maybe_single().execute(), token)
        # Newer postgrest clients return None instead of an empty response.
        if response is None:
            return None
        return response.data

    async def read_many(
        self,
        table: str,
        filters: Sequence[Condition] = (),
        *,
        columns: str = "*",
        order: Optional[OrderBy] = None,
        limit: Optional[int] = None,
        token: Optional[CancellationToken] = None,
    ) -> list[Record]:
        query = _apply_filters(self._client.table(table).select(columns), filters)
        if order is not None:
            query = query.order(order.column, desc=order.descending)
        if limit is not None:
            query = query.limit(limit)
        with _translate_errors(f"Read {table}"):
            response = await run_with_token(query.execute(), token)
        return list(response.data or [])

    async def insert(
        self, table: str, record: Union[Record, list[Record]]
    ) -> Union[Record, list[Record]]:
        with _translate_errors(f"Insert into {table}"):
            response = await self._client.table(table).insert(record).execute()
        rows = list(response.data or [])
        if isinstance(record, list):
            return rows
        if not rows:
            raise GatewayError(f"Insert into {table} returned no row")
        return rows[0]

    async def update(
        self, table: str, filters: Sequence[Condition], patch: Record
    ) -> None:
        query = _apply_filters(self._client.table(table).update(patch), filters)
        with _translate_errors(f"Update {table}"):
            await query.execute()

    async def delete(self, table: str, filters: Sequence[Condition]) -> None:
        query = _apply_filters(self._client.table(table).delete(), filters)
        with _translate_errors(f"Delete from {table}"):
            await query.execute()

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        filters: Sequence[Condition] = (),
    ) -> Subscription:
        # Realtime accepts a single server-side filter.
        server_filter = next((c for c in filters if c.op == "eq"), None)
        channel = self._client.channel(f"{table}-changes-{uuid.uuid4().hex[:8]}")

        def handle(payload: dict) -> None:
            try:
                event = _to_change_event(table, payload)
            except ValueError:
                logger.warning("Ignoring unknown change payload on %s", table)
                return
            callback(event)

        kwargs: dict[str, Any] = {"schema": "public", "table": table}
        if server_filter is not None:
            kwargs["filter"] = f"{server_filter.column}=eq.{server_filter.value}"
        channel.on_postgres_changes("*", callback=handle, **kwargs)
        with _translate_errors(f"Subscribe to {table}"):
            await channel.subscribe()
        logger.info("Subscribed to %s changes", table)
        return SupabaseSubscription(self._client, channel)

    # Auth --------------------------------------------------------------

    async def get_session(self) -> Optional[Session]:
        try:
            if self._access_token:
                response = await self._client.auth.get_user(self._access_token)
                if response is None or response.user is None:
                    return None
                return Session(
                    user_id=response.user.id,
                    email=response.user.email,
                    access_token=self._access_token,
                )
            return _to_session(await self._client.auth.get_session())
        except SupabaseAuthError as exc:
            logger.warning("Session lookup failed: %s", exc)
            return None

    def on_auth_event(self, callback: AuthCallback) -> Callable[[], None]:
        def handle(event: str, raw_session: Any) -> None:
            try:
                auth_event = AuthEvent(event)
            except ValueError:
                logger.debug("Ignoring auth event %s", event)
                return
            callback(auth_event, _to_session(raw_session))

        subscription = self._client.auth.on_auth_state_change(handle)
        return subscription.unsubscribe

    async def sign_in(self, email: str, password: str) -> Session:
        try:
            response = await self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except SupabaseAuthError as exc:
            raise AuthError(exc.message) from exc
        session = _to_session(response.session)
        if session is None:
            raise AuthError("Sign in did not return a session")
        return session

    async def sign_up(
        self, email: str, password: str, metadata: Optional[Record] = None
    ) -> Optional[Session]:
        try:
            response = await self._client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": metadata or {}},
                }
            )
        except SupabaseAuthError as exc:
            raise AuthError(exc.message) from exc
        # No session until the address is confirmed, when confirmation is on.
        return _to_session(response.session)

    async def sign_out(self) -> None:
        try:
            await self._client.auth.sign_out()
        except SupabaseAuthError as exc:
            raise AuthError(exc.message) from exc

    # Functions ---------------------------------------------------------

    async def rpc(self, name: str, params: Record) -> Any:
        with _translate_errors(f"RPC {name}"):
            response = await self._client.rpc(name, params).execute()
        return response.data

    async def invoke_server_function(self, name: str, payload: Record) -> Record:
        if is_service_function(name):
            access_token = self._access_token
            if access_token is None:
                session = await self.get_session()
                access_token = session.access_token if session else None
            return await invoke_service_function(
                name, payload, access_token=access_token, calling_service="gateway"
            )

        with _translate_errors(f"Function {name}"):
            result = await self._client.functions.invoke(
                name, invoke_options={"body": payload}
            )
        if isinstance(result, (bytes, str)):
            try:
                result = json.loads(result or "{}")
            except ValueError as exc:
                raise GatewayError(f"Function {name} returned a non-JSON body") from exc
        if not isinstance(result, dict):
            raise GatewayError(f"Function {name} returned an unexpected body")
        return result

    # Object storage ----------------------------------------------------

    async def upload_object(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        with _translate_errors(f"Upload {bucket}/{path}"):
            await self._client.storage.from_(bucket).upload(
                path=path, file=data, file_options={"content-type": content_type}
            )

    async def get_object_url(self, bucket: str, path: str) -> str:
        url = self._client.storage.from_(bucket).get_public_url(path)
        if inspect.isawaitable(url):
            url = await url
        return url

    async def delete_object(self, bucket: str, path: str) -> None:
        with _translate_errors(f"Delete {bucket}/{path}"):
            await self._client.storage.from_(bucket).remove([path])

    async def aclose(self) -> None:
        await self._client.remove_all_channels()
