"""Realtime-aware CRM collections.

A ``CrmCollection`` keeps a local, newest-first copy of one CRM table
(optionally scoped to one client). With a change-feed subscription, insert /
update / delete events are applied as deltas; without one, every successful
write is followed by a full refetch so the local copy converges.
"""

from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from libs.common.config import get_settings
from libs.common.datetime_utils import epoch_millis
from libs.common.errors import GatewayError
from libs.common.logging import get_logger
from libs.common.notifications import Notifier
from libs.gateway.base import (
    ChangeEvent,
    ChangeType,
    Condition,
    DataGateway,
    OrderBy,
    Record,
    Subscription,
    eq,
    matches_all,
)
from services.portal_service.schemas import (
    CRMCampaignEnrollment,
    CRMClient,
    CRMClientNote,
    CRMDocument,
    CRMMarketingCampaign,
    CRMMembership,
    CRMPurchase,
)

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class CollectionSpec(Generic[ModelT]):
    table: str
    model: Type[ModelT]
    label: str
    plural: str
    order_column: str = "created_at"
    scope_column: Optional[str] = None
    created_message: Optional[str] = None
    create_failed_message: Optional[str] = None


CLIENTS = CollectionSpec("crm_clients", CRMClient, "client", "clients")
MEMBERSHIPS = CollectionSpec(
    "crm_memberships", CRMMembership, "membership", "memberships",
    scope_column="client_id",
)
PURCHASES = CollectionSpec(
    "crm_purchases", CRMPurchase, "purchase", "purchases",
    order_column="purchased_at",
    scope_column="client_id",
    created_message="Purchase recorded successfully",
)
DOCUMENTS = CollectionSpec(
    "crm_documents", CRMDocument, "document", "documents",
    scope_column="client_id",
    created_message="Document uploaded successfully",
)
NOTES = CollectionSpec(
    "crm_client_notes", CRMClientNote, "note", "notes",
    scope_column="client_id",
    created_message="Note added successfully",
)
CAMPAIGNS = CollectionSpec(
    "crm_marketing_campaigns", CRMMarketingCampaign, "campaign", "campaigns"
)
ENROLLMENTS = CollectionSpec(
    "crm_campaign_enrollments", CRMCampaignEnrollment, "enrollment", "enrollments",
    order_column="enrolled_at",
    scope_column="campaign_id",
    created_message="Client enrolled in campaign",
    create_failed_message="Failed to enroll client",
)


class CrmCollection(Generic[ModelT]):
    def __init__(
        self,
        gateway: DataGateway,
        spec: CollectionSpec[ModelT],
        notifier: Notifier,
        *,
        scope: Optional[str] = None,
        realtime: bool = False,
    ) -> None:
        if scope is not None and spec.scope_column is None:
            raise ValueError(f"{spec.table} cannot be scoped")
        self._gateway = gateway
        self.spec = spec
        self._notifier = notifier
        self.scope = scope
        self.realtime = realtime
        self.items: List[ModelT] = []
        self.loading = True
        self._subscription: Optional[Subscription] = None

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    @property
    def scope_filters(self) -> List[Condition]:
        if self.scope is None:
            return []
        return [eq(self.spec.scope_column, self.scope)]

    async def open(self) -> "CrmCollection[ModelT]":
        await self.fetch_items()
        if self.realtime:
            await self._subscribe()
        return self

    async def aclose(self) -> None:
        await self._unsubscribe()

    async def __aenter__(self) -> "CrmCollection[ModelT]":
        return await self.open()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def set_scope(self, scope: Optional[str]) -> None:
        """Point the collection at another client; drops the old feed."""
        if scope == self.scope:
            return
        await self._unsubscribe()
        self.scope = scope
        self.items = []
        await self.fetch_items()
        if self.realtime:
            await self._subscribe()

    async def fetch_items(self) -> List[ModelT]:
        """Replace the local copy with a full read, newest first."""
        self.loading = True
        try:
            rows = await self._gateway.read_many(
                self.spec.table,
                self.scope_filters,
                order=OrderBy(self.spec.order_column),
            )
        except GatewayError as exc:
            logger.error("Failed to load %s: %s", self.spec.plural, exc)
            self._notifier.error(f"Failed to load {self.spec.plural}")
        else:
            self.items = [self.spec.model.model_validate(row) for row in rows]
        finally:
            self.loading = False
        return self.items

    async def create(self, record: Record) -> ModelT:
        try:
            row = await self._gateway.insert(self.spec.table, record)
        except GatewayError:
            self._notifier.error(
                self.spec.create_failed_message or f"Failed to create {self.spec.label}"
            )
            raise
        self._notifier.success(
            self.spec.created_message
            or f"{self.spec.label.capitalize()} created successfully"
        )
        await self._converge()
        return self.spec.model.model_validate(row)

    async def update(self, record_id: str, patch: Record) -> None:
        try:
            await self._gateway.update(self.spec.table, [eq("id", record_id)], patch)
        except GatewayError:
            self._notifier.error(f"Failed to update {self.spec.label}")
            raise
        self._notifier.success(f"{self.spec.label.capitalize()} updated successfully")
        await self._converge()

    async def delete(self, record_id: str) -> None:
        try:
            await self._gateway.delete(self.spec.table, [eq("id", record_id)])
        except GatewayError:
            self._notifier.error(f"Failed to delete {self.spec.label}")
            raise
        self._notifier.success(f"{self.spec.label.capitalize()} deleted successfully")
        await self._converge()

    def apply_change(self, event: ChangeEvent) -> None:
        """Apply one change-feed delta to the local copy."""
        if event.event_type is ChangeType.INSERT:
            if not matches_all(event.record, self.scope_filters):
                return
            item = self.spec.model.model_validate(event.record)
            self.items = [item, *self.items]
        elif event.event_type is ChangeType.UPDATE:
            record_id = event.record_id
            self.items = [
                self.spec.model.model_validate(event.record)
                if getattr(item, "id", None) == record_id
                else item
                for item in self.items
            ]
        elif event.event_type is ChangeType.DELETE:
            record_id = event.record_id
            self.items = [
                item for item in self.items if getattr(item, "id", None) != record_id
            ]

    async def _converge(self) -> None:
        # With a live feed the write comes back as a delta.
        if not self.subscribed:
            await self.fetch_items()

    async def _subscribe(self) -> None:
        self._subscription = await self._gateway.subscribe(
            self.spec.table, self._on_change, filters=self.scope_filters
        )

    async def _unsubscribe(self) -> None:
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.unsubscribe()

    def _on_change(self, event: ChangeEvent) -> None:
        try:
            self.apply_change(event)
        except ValueError:
            # pydantic.ValidationError is a ValueError.
            logger.exception("Dropping malformed %s change event", self.spec.table)


class DocumentsCollection(CrmCollection[CRMDocument]):
    """CRM documents: records in ``crm_documents``, files in object storage."""

    def __init__(
        self,
        gateway: DataGateway,
        notifier: Notifier,
        *,
        scope: Optional[str] = None,
        realtime: bool = False,
        bucket: Optional[str] = None,
    ) -> None:
        super().__init__(gateway, DOCUMENTS, notifier, scope=scope, realtime=realtime)
        self.bucket = bucket or get_settings().DOCUMENTS_BUCKET

    async def upload_document(
        self,
        client_id: str,
        filename: str,
        data: bytes,
        document_type: str,
        description: Optional[str] = None,
        content_type: str = "application/octet-stream",
    ) -> CRMDocument:
        file_path = f"{client_id}/{epoch_millis()}-{filename}"
        try:
            await self._gateway.upload_object(self.bucket, file_path, data, content_type)
        except GatewayError:
            self._notifier.error("Failed to upload file")
            raise

        try:
            row = await self._gateway.insert(
                self.spec.table,
                {
                    "client_id": client_id,
                    "document_type": document_type,
                    "name": filename,
                    "description": description,
                    "file_path": file_path,
                    "file_size": len(data),
                    "mime_type": content_type,
                },
            )
        except GatewayError:
            self._notifier.error("Failed to save document record")
            raise
        self._notifier.success(self.spec.created_message)
        await self._converge()
        return CRMDocument.model_validate(row)

    async def delete_document(self, document_id: str, file_path: str) -> None:
        try:
            await self._gateway.delete_object(self.bucket, file_path)
        except GatewayError as exc:
            # The record still goes; an orphaned file is harmless.
            logger.warning("Failed to remove stored file %s: %s", file_path, exc)
        await self.delete(document_id)

    async def get_document_url(self, file_path: str) -> str:
        return await self._gateway.get_object_url(self.bucket, file_path)


class EnrollmentsCollection(CrmCollection[CRMCampaignEnrollment]):
    """Clients enrolled in marketing campaigns, optionally for one campaign."""

    def __init__(
        self,
        gateway: DataGateway,
        notifier: Notifier,
        *,
        scope: Optional[str] = None,
        realtime: bool = False,
    ) -> None:
        super().__init__(gateway, ENROLLMENTS, notifier, scope=scope, realtime=realtime)

    async def enroll_client(self, campaign_id: str, client_id: str) -> CRMCampaignEnrollment:
        return await self.create({"campaign_id": campaign_id, "client_id": client_id})


def clients_collection(
    gateway: DataGateway, notifier: Notifier, *, realtime: bool = False
) -> CrmCollection[CRMClient]:
    return CrmCollection(gateway, CLIENTS, notifier, realtime=realtime)


def memberships_collection(
    gateway: DataGateway,
    notifier: Notifier,
    client_id: Optional[str] = None,
    *,
    realtime: bool = False,
) -> CrmCollection[CRMMembership]:
    return CrmCollection(
        gateway, MEMBERSHIPS, notifier, scope=client_id, realtime=realtime
    )


def purchases_collection(
    gateway: DataGateway,
    notifier: Notifier,
    client_id: Optional[str] = None,
    *,
    realtime: bool = False,
) -> CrmCollection[CRMPurchase]:
    return CrmCollection(gateway, PURCHASES, notifier, scope=client_id, realtime=realtime)


def notes_collection(
    gateway: DataGateway,
    notifier: Notifier,
    client_id: Optional[str] = None,
    *,
    realtime: bool = False,
) -> CrmCollection[CRMClientNote]:
    return CrmCollection(gateway, NOTES, notifier, scope=client_id, realtime=realtime)


def campaigns_collection(
    gateway: DataGateway, notifier: Notifier, *, realtime: bool = False
) -> CrmCollection[CRMMarketingCampaign]:
    return CrmCollection(gateway, CAMPAIGNS, notifier, realtime=realtime)


def enrollments_collection(
    gateway: DataGateway,
    notifier: Notifier,
    campaign_id: Optional[str] = None,
    *,
    realtime: bool = False,
) -> EnrollmentsCollection:
    return EnrollmentsCollection(gateway, notifier, scope=campaign_id, realtime=realtime)
