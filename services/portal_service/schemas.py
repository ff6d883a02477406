"""Pydantic schemas for the portal service."""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from libs.auth.models import UserRole

# ============================================================================
# ENUMS
# ============================================================================


class MembershipTier(str, enum.Enum):
    FREE = "free"
    ESSENTIAL = "essential"
    PREMIUM = "premium"
    ELITE = "elite"


class MembershipStatus(str, enum.Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class PurchaseType(str, enum.Enum):
    SUBSCRIPTION = "subscription"
    ONE_TIME = "one_time"
    SUPPLEMENT = "supplement"
    SERVICE = "service"
    LAB_TESTING = "lab_testing"


class DocumentType(str, enum.Enum):
    CONTRACT = "contract"
    LAB_RESULTS = "lab_results"
    HEALTH_RECORD = "health_record"
    INVOICE = "invoice"
    OTHER = "other"


class MarketingStatus(str, enum.Enum):
    LEAD = "lead"
    PROSPECT = "prospect"
    CUSTOMER = "customer"
    CHURNED = "churned"
    VIP = "vip"


class ProgramType(str, enum.Enum):
    WELLNESS = "wellness"
    SLEEP = "sleep"
    MENTAL_PERFORMANCE = "mental_performance"
    BUNDLE = "bundle"


# Intake form statuses that mean a coach has taken the client on.
COACH_ASSIGNED_STATUSES = frozenset({"assigned", "completed"})


# ============================================================================
# AGGREGATED PROFILE VIEW
# ============================================================================


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore", from_attributes=True)


class UserProfile(_Row):
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class Membership(_Row):
    id: str
    tier: MembershipTier
    status: MembershipStatus
    start_date: date
    renewal_date: Optional[date] = None
    monthly_price: Optional[Decimal] = None


class Purchase(_Row):
    id: str
    product_name: str
    amount: Decimal
    currency: str = "USD"
    status: str
    purchased_at: datetime
    purchase_type: PurchaseType


class FormSubmission(_Row):
    id: str
    specialty: str
    status: str
    submitted_at: datetime


class ClientDocument(_Row):
    id: str
    name: str
    document_type: DocumentType
    file_path: str
    created_at: datetime


class OrderLine(_Row):
    id: Optional[str] = None
    product_id: Optional[str] = None
    title: Optional[str] = None
    quantity: int
    unit_price: Decimal
    metadata: dict[str, Any] = Field(default_factory=dict)


class Order(_Row):
    id: str
    created_at: datetime
    total_amount: Decimal
    status: str
    currency: str = "USD"
    order_items: list[OrderLine] = Field(default_factory=list)
    billing_address: Optional[dict[str, Any]] = None
    shipping_address: Optional[dict[str, Any]] = None


class AssignedCoach(BaseModel):
    specialty: str
    assigned_at: datetime


def project_assigned_coaches(submissions: list[FormSubmission]) -> list[AssignedCoach]:
    return [
        AssignedCoach(specialty=s.specialty, assigned_at=s.submitted_at)
        for s in submissions
        if s.status in COACH_ASSIGNED_STATUSES
    ]


class AggregatedProfileView(BaseModel):
    """Read model for the signed-in user, rebuilt on every state change."""

    profile: Optional[UserProfile] = None
    membership: Optional[Membership] = None
    purchases: list[Purchase] = Field(default_factory=list)
    submissions: list[FormSubmission] = Field(default_factory=list)
    documents: list[ClientDocument] = Field(default_factory=list)
    orders: list[Order] = Field(default_factory=list)
    loading: bool = False

    @computed_field
    @property
    def assigned_coaches(self) -> list[AssignedCoach]:
        return project_assigned_coaches(self.submissions)


class PortalMeResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    role: Optional[UserRole] = None
    is_staff: bool
    view: AggregatedProfileView


# ============================================================================
# CRM RECORDS
# ============================================================================


class CRMClient(_Row):
    id: str
    user_id: Optional[str] = None
    email: str
    full_name: str
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: str = "US"
    health_goals: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    marketing_status: MarketingStatus = MarketingStatus.LEAD
    lead_source: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CRMClientCreate(BaseModel):
    email: str
    full_name: str
    user_id: Optional[str] = None
    phone: Optional[str] = None
    health_goals: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    marketing_status: MarketingStatus = MarketingStatus.LEAD
    lead_source: Optional[str] = None


class CRMClientUpdate(BaseModel):
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    health_goals: Optional[str] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None
    marketing_status: Optional[MarketingStatus] = None


class CRMMembership(_Row):
    id: str
    client_id: str
    tier: MembershipTier
    status: MembershipStatus
    start_date: date
    end_date: Optional[date] = None
    renewal_date: Optional[date] = None
    monthly_price: Optional[Decimal] = None
    program_type: ProgramType = ProgramType.WELLNESS
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class CRMMembershipCreate(BaseModel):
    client_id: str
    tier: MembershipTier
    status: MembershipStatus = MembershipStatus.ACTIVE
    start_date: date
    renewal_date: Optional[date] = None
    monthly_price: Optional[Decimal] = None
    program_type: ProgramType = ProgramType.WELLNESS


class CRMMembershipUpdate(BaseModel):
    tier: Optional[MembershipTier] = None
    status: Optional[MembershipStatus] = None
    end_date: Optional[date] = None
    renewal_date: Optional[date] = None
    monthly_price: Optional[Decimal] = None
    notes: Optional[str] = None


class CRMPurchase(_Row):
    id: str
    client_id: str
    purchase_type: PurchaseType
    product_name: str
    description: Optional[str] = None
    amount: Decimal
    currency: str = "USD"
    status: str
    purchased_at: datetime
    created_at: Optional[datetime] = None


class CRMPurchaseCreate(BaseModel):
    client_id: str
    purchase_type: PurchaseType
    product_name: str
    description: Optional[str] = None
    amount: Decimal = Field(..., ge=0)
    currency: str = "USD"
    status: str = "completed"
    purchased_at: Optional[datetime] = None


class CRMDocument(_Row):
    id: str
    client_id: str
    document_type: DocumentType
    name: str
    description: Optional[str] = None
    file_path: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    uploaded_by: Optional[str] = None
    shared_with_client: bool = False
    created_at: Optional[datetime] = None


class CRMClientNote(_Row):
    id: str
    client_id: str
    author_id: Optional[str] = None
    note_type: str = "general"
    content: str
    is_pinned: bool = False
    created_at: Optional[datetime] = None


class CRMMarketingCampaign(_Row):
    id: str
    name: str
    description: Optional[str] = None
    campaign_type: str
    status: str
    target_segment: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: Optional[datetime] = None


class CRMCampaignEnrollment(_Row):
    id: str
    campaign_id: str
    client_id: str
    enrolled_at: datetime
    status: Optional[str] = None
    last_interaction: Optional[datetime] = None
    conversion_date: Optional[datetime] = None
    notes: Optional[str] = None


class CRMCampaignEnrollmentCreate(BaseModel):
    client_id: str


# ============================================================================
# SAVED DASHBOARD VIEWS
# ============================================================================


class _CamelModel(BaseModel):
    # Stored as JSON written by the dashboard, which uses camelCase keys.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DateRange(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: datetime = Field(..., alias="from")
    end: datetime = Field(..., alias="to")


class SavedViewConfig(_CamelModel):
    date_range: DateRange
    comparison_enabled: bool = False
    comparison_range: Optional[DateRange] = None
    preset: Optional[str] = None
    comparison_preset: Optional[str] = None


class SavedView(_Row):
    id: str
    name: str
    description: Optional[str] = None
    config: SavedViewConfig
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SavedViewCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    config: SavedViewConfig


class SavedViewUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    config: Optional[SavedViewConfig] = None
    is_default: Optional[bool] = None


# ============================================================================
# LEAD CAPTURE
# ============================================================================


class LeadData(BaseModel):
    """A lead as normalised from a website form webhook."""

    email: str
    full_name: str
    phone: Optional[str] = None
    lead_source: str = "webflow"
    referral_source: Optional[str] = None
    health_goals: Optional[str] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class LeadWebhookResponse(BaseModel):
    success: bool = True
    message: str
    client_id: str
    duplicate: bool
