"""Remote data gateway contract.

The portal never talks to storage directly: auth, table CRUD, change feeds,
object storage and server functions all go through a ``DataGateway``. The
production implementation is ``SupabaseGateway``; tests use an in-memory fake.
"""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Union

from libs.auth.models import AuthEvent, Session
from libs.common.cancellation import CancellationToken

Record = dict[str, Any]


@dataclass(frozen=True)
class Condition:
    column: str
    op: str
    value: Any

    def matches(self, record: Record) -> bool:
        actual = record.get(self.column)
        if self.op == "eq":
            return actual == self.value
        if self.op == "neq":
            return actual != self.value
        if actual is None:
            return False
        if self.op == "lt":
            return actual < self.value
        if self.op == "gt":
            return actual > self.value
        raise ValueError(f"Unsupported filter operator: {self.op}")


def eq(column: str, value: Any) -> Condition:
    return Condition(column, "eq", value)


def neq(column: str, value: Any) -> Condition:
    return Condition(column, "neq", value)


def lt(column: str, value: Any) -> Condition:
    return Condition(column, "lt", value)


def gt(column: str, value: Any) -> Condition:
    return Condition(column, "gt", value)


def matches_all(record: Record, filters: Sequence[Condition]) -> bool:
    return all(condition.matches(record) for condition in filters)


@dataclass(frozen=True)
class OrderBy:
    column: str
    descending: bool = True


class ChangeType(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class ChangeEvent:
    """One change-feed notification for a table."""

    event_type: ChangeType
    table: str
    record: Record = field(default_factory=dict)
    old_record: Record = field(default_factory=dict)

    @property
    def record_id(self) -> Any:
        return self.record.get("id") or self.old_record.get("id")


ChangeCallback = Callable[[ChangeEvent], None]
AuthCallback = Callable[[AuthEvent, Optional[Session]], None]


class Subscription(abc.ABC):
    """Handle for an active change-feed subscription."""

    @abc.abstractmethod
    async def unsubscribe(self) -> None:
        ...


class DataGateway(abc.ABC):
    """Operations the portal consumes from the hosted backend."""

    # Tables ------------------------------------------------------------

    @abc.abstractmethod
    async def read_one(
        self,
        table: str,
        filters: Sequence[Condition],
        *,
        columns: str = "*",
        token: Optional[CancellationToken] = None,
    ) -> Optional[Record]:
        ...

    @abc.abstractmethod
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
        ...

    @abc.abstractmethod
    async def insert(
        self, table: str, record: Union[Record, list[Record]]
    ) -> Union[Record, list[Record]]:
        ...

    @abc.abstractmethod
    async def update(
        self, table: str, filters: Sequence[Condition], patch: Record
    ) -> None:
        ...

    @abc.abstractmethod
    async def delete(self, table: str, filters: Sequence[Condition]) -> None:
        ...

    @abc.abstractmethod
    async def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        *,
        filters: Sequence[Condition] = (),
    ) -> Subscription:
        ...

    # Auth --------------------------------------------------------------

    @abc.abstractmethod
    async def get_session(self) -> Optional[Session]:
        ...

    @abc.abstractmethod
    def on_auth_event(self, callback: AuthCallback) -> Callable[[], None]:
        """Register ``callback``; returns an unsubscribe function."""

    @abc.abstractmethod
    async def sign_in(self, email: str, password: str) -> Session:
        ...

    @abc.abstractmethod
    async def sign_up(
        self, email: str, password: str, metadata: Optional[Record] = None
    ) -> Optional[Session]:
        ...

    @abc.abstractmethod
    async def sign_out(self) -> None:
        ...

    # Functions ---------------------------------------------------------

    @abc.abstractmethod
    async def rpc(self, name: str, params: Record) -> Any:
        ...

    @abc.abstractmethod
    async def invoke_server_function(self, name: str, payload: Record) -> Record:
        ...

    # Object storage ----------------------------------------------------

    @abc.abstractmethod
    async def upload_object(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> None:
        ...

    @abc.abstractmethod
    async def get_object_url(self, bucket: str, path: str) -> str:
        ...

    @abc.abstractmethod
    async def delete_object(self, bucket: str, path: str) -> None:
        ...

    async def aclose(self) -> None:
        """Release transport resources. Default: nothing to release."""
