"""
In-memory ``DataGateway`` used by unit and integration tests.

Tables are lists of dicts. Reads can be held open with ``block()`` to
simulate slow queries, any operation can be made to fail with ``fail()``,
and writes are echoed to change-feed subscribers the way Supabase realtime
delivers them.
"""

import asyncio
import inspect
import uuid
from collections import defaultdict
from typing import Any, Callable, Optional, Sequence, Union

import httpx
from libs.auth.models import AuthEvent, Session
from libs.common.cancellation import CancellationToken, run_with_token
from libs.common.datetime_utils import utc_now
from libs.common.errors import AuthError, GatewayError
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
    matches_all,
)

# Server-side column defaults the real schema fills in.
TABLE_DEFAULTS: dict[str, Callable[[], Record]] = {
    "crm_purchases": lambda: {"purchased_at": utc_now().isoformat()},
    "orders": lambda: {"currency": "USD"},
    "crm_campaign_enrollments": lambda: {
        "enrolled_at": utc_now().isoformat(),
        "status": "active",
    },
    "crm_saved_views": lambda: {"updated_at": utc_now().isoformat()},
}


class FakeSubscription(Subscription):
    def __init__(
        self,
        gateway: "InMemoryGateway",
        table: str,
        callback: ChangeCallback,
        filters: Sequence[Condition],
    ):
        self.gateway = gateway
        self.table = table
        self.callback = callback
        self.filters = list(filters)
        self.active = True

    def wants(self, event: ChangeEvent) -> bool:
        if not self.active or event.table != self.table:
            return False
        # Deletes only carry the primary key, so they are never filtered out.
        if event.event_type is ChangeType.DELETE:
            return True
        return matches_all(event.record, self.filters)

    async def unsubscribe(self) -> None:
        self.active = False
        if self in self.gateway.subscriptions:
            self.gateway.subscriptions.remove(self)


class _Gate:
    def __init__(self, table: str, value: Any):
        self.table = table
        self.value = value
        self.event = asyncio.Event()

    def applies(self, table: str, filters: Sequence[Condition]) -> bool:
        if self.event.is_set() or table != self.table:
            return False
        return self.value is None or any(c.value == self.value for c in filters)


class InMemoryGateway(DataGateway):
    def __init__(self, *, session: Optional[Session] = None, realtime_echo: bool = True):
        self.tables: dict[str, list[Record]] = defaultdict(list)
        self.session = session
        self.realtime_echo = realtime_echo

        self.users: dict[str, tuple[str, Session]] = {}
        self.roles: dict[str, str] = {}
        self.role_delay = 0.0
        self.functions: dict[str, Union[Record, Callable[[Record], Any]]] = {}
        self.function_calls: list[tuple[str, Record]] = []
        self.objects: dict[tuple[str, str], bytes] = {}
        # When set, functions served by our own services are called through it.
        self.service_transport: Optional[httpx.AsyncBaseTransport] = None

        self.reads: list[str] = []
        self.cancelled_reads: list[str] = []
        self.subscriptions: list[FakeSubscription] = []
        self.closed = False
        self._auth_listeners: list[AuthCallback] = []
        self._failures: dict[tuple[str, str], GatewayError] = {}
        self._gates: list[_Gate] = []

    # Test controls -----------------------------------------------------

    def seed(self, table: str, *rows: Record) -> None:
        for row in rows:
            self.tables[table].append(dict(row))

    def rows(self, table: str) -> list[Record]:
        return [dict(row) for row in self.tables[table]]

    def fail(self, operation: str, target: str, message: str = "boom") -> None:
        """Make ``operation`` on ``target`` (table, rpc, function or bucket) fail."""
        self._failures[(operation, target)] = GatewayError(message)

    def recover(self, operation: str, target: str) -> None:
        self._failures.pop((operation, target), None)

    def block(self, table: str, value: Any = None) -> asyncio.Event:
        """Hold reads of ``table`` (optionally only those filtering on ``value``)."""
        gate = _Gate(table, value)
        self._gates.append(gate)
        return gate.event

    def release_all(self) -> None:
        for gate in self._gates:
            gate.event.set()

    def emit_auth(self, event: AuthEvent, session: Optional[Session]) -> None:
        self.session = session
        for listener in list(self._auth_listeners):
            listener(event, session)

    def emit_change(self, event: ChangeEvent) -> None:
        for subscription in list(self.subscriptions):
            if subscription.wants(event):
                subscription.callback(event)

    def _check(self, operation: str, target: str) -> None:
        failure = self._failures.get((operation, target))
        if failure is not None:
            raise failure

    # Tables ------------------------------------------------------------

    async def _read(
        self,
        table: str,
        filters: Sequence[Condition],
        columns: str,
        order: Optional[OrderBy],
        limit: Optional[int],
    ) -> list[Record]:
        self.reads.append(table)
        for gate in list(self._gates):
            if gate.applies(table, filters):
                try:
                    await gate.event.wait()
                except asyncio.CancelledError:
                    self.cancelled_reads.append(table)
                    raise
        self._check("read", table)

        rows = [dict(row) for row in self.tables[table] if matches_all(row, filters)]
        if order is not None:
            present = [row for row in rows if row.get(order.column) is not None]
            missing = [row for row in rows if row.get(order.column) is None]
            present.sort(key=lambda row: row[order.column], reverse=order.descending)
            rows = present + missing
        if limit is not None:
            rows = rows[:limit]
        if "order_items(*)" in columns:
            for row in rows:
                row["order_items"] = [
                    dict(line)
                    for line in self.tables["order_items"]
                    if line.get("order_id") == row.get("id")
                ]
        return rows

    async def read_one(
        self,
        table: str,
        filters: Sequence[Condition],
        *,
        columns: str = "*",
        token: Optional[CancellationToken] = None,
    ) -> Optional[Record]:
        rows = await run_with_token(self._read(table, filters, columns, None, None), token)
        return rows[0] if rows else None

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
        return await run_with_token(self._read(table, filters, columns, order, limit), token)

    async def insert(
        self, table: str, record: Union[Record, list[Record]]
    ) -> Union[Record, list[Record]]:
        self._check("insert", table)
        records = record if isinstance(record, list) else [record]
        stored = []
        for entry in records:
            row = {"id": str(uuid.uuid4()), "created_at": utc_now().isoformat()}
            if table in TABLE_DEFAULTS:
                row.update(TABLE_DEFAULTS[table]())
            row.update(entry)
            self.tables[table].append(row)
            stored.append(dict(row))
            if self.realtime_echo:
                self.emit_change(ChangeEvent(ChangeType.INSERT, table, record=dict(row)))
        return stored if isinstance(record, list) else stored[0]

    async def update(
        self, table: str, filters: Sequence[Condition], patch: Record
    ) -> None:
        self._check("update", table)
        for row in self.tables[table]:
            if matches_all(row, filters):
                old = dict(row)
                row.update(patch)
                if self.realtime_echo:
                    self.emit_change(
                        ChangeEvent(
                            ChangeType.UPDATE, table, record=dict(row), old_record=old
                        )
                    )

    async def delete(self, table: str, filters: Sequence[Condition]) -> None:
        self._check("delete", table)
        kept, removed = [], []
        for row in self.tables[table]:
            (removed if matches_all(row, filters) else kept).append(row)
        self.tables[table] = kept
        if self.realtime_echo:
            for row in removed:
                self.emit_change(
                    ChangeEvent(ChangeType.DELETE, table, old_record={"id": row["id"]})
                )

    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        filters: Sequence[Condition] = (),
    ) -> Subscription:
        subscription = FakeSubscription(self, table, callback, filters)
        self.subscriptions.append(subscription)
        return subscription

    # Auth --------------------------------------------------------------

    def register_user(self, session: Session, password: str = "secret123") -> None:
        self.users[session.email] = (password, session)

    async def get_session(self) -> Optional[Session]:
        self._check("auth", "session")
        return self.session

    def on_auth_event(self, callback: AuthCallback) -> Callable[[], None]:
        self._auth_listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._auth_listeners:
                self._auth_listeners.remove(callback)

        return unsubscribe

    async def sign_in(self, email: str, password: str) -> Session:
        stored = self.users.get(email)
        if stored is None or stored[0] != password:
            raise AuthError("Invalid login credentials")
        self.emit_auth(AuthEvent.SIGNED_IN, stored[1])
        return stored[1]

    async def sign_up(
        self, email: str, password: str, metadata: Optional[Record] = None
    ) -> Optional[Session]:
        if email in self.users:
            raise AuthError("User already registered")
        session = Session(
            user_id=str(uuid.uuid4()), email=email, access_token=f"access-{uuid.uuid4().hex}"
        )
        self.users[email] = (password, session)
        self.seed("profiles", {"user_id": session.user_id, "email": email, **(metadata or {})})
        return session

    async def sign_out(self) -> None:
        self.emit_auth(AuthEvent.SIGNED_OUT, None)

    # Functions ---------------------------------------------------------

    async def rpc(self, name: str, params: Record) -> Any:
        self._check("rpc", name)
        if name != "get_user_role":
            raise GatewayError(f"Unknown rpc {name}")
        if self.role_delay:
            await asyncio.sleep(self.role_delay)
        return self.roles.get(params["_user_id"], "client")

    async def invoke_server_function(self, name: str, payload: Record) -> Record:
        self.function_calls.append((name, payload))
        self._check("function", name)
        if self.service_transport is not None and is_service_function(name):
            return await invoke_service_function(
                name,
                payload,
                access_token=self.session.access_token if self.session else None,
                calling_service="gateway",
                transport=self.service_transport,
            )
        response = self.functions.get(name, {})
        if callable(response):
            response = response(payload)
            if inspect.isawaitable(response):
                response = await response
        return response

    # Object storage ----------------------------------------------------

    async def upload_object(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        self._check("upload", bucket)
        self.objects[(bucket, path)] = data

    async def get_object_url(self, bucket: str, path: str) -> str:
        return f"https://storage.test/{bucket}/{path}"

    async def delete_object(self, bucket: str, path: str) -> None:
        self._check("remove", bucket)
        self.objects.pop((bucket, path), None)

    async def aclose(self) -> None:
        self.closed = True


class FakeStripe:
    """Stands in for ``StripeClient``: records session parameters and serves canned sessions."""

    def __init__(self, sessions: Optional[dict[str, Record]] = None):
        self.created: list[Record] = []
        self.sessions = sessions or {}

    async def create_checkout_session(self, params: Record) -> Record:
        self.created.append(params)
        return {"id": "cs_test_1", "url": "https://checkout.stripe.test/cs_test_1"}

    async def retrieve_checkout_session(self, session_id: str) -> Record:
        return self.sessions[session_id]
