"""
API schemas for billing operations.

Request and response models for billing endpoints.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from packages.billing.models.domain.enums import (
    BillingEventStatus,
    BillingEventType,
    BillingProvider,
    MeteredFeature,
    Product,
    SubscriptionTier,
)


# ============================================================================
# Checkout Schemas
# ============================================================================


class UpgradeRequest(BaseModel):
    """Authenticated upgrade. The subscriber comes from the bearer token only."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    plan: Optional[str] = Field(default=None, description="Plan slug; defaults to pro")
    product: Optional[Product] = None
    org_id: Optional[str] = None
    country_code: Optional[str] = Field(default=None, min_length=2, max_length=2)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CheckoutResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    checkout_url: str
    provider: str
    session_id: str


class ExternalCheckoutQuery(BaseModel):
    """Query of the public checkout redirect."""

    plan: str = Field(..., min_length=1)
    user_id: UUID
    return_url: str = Field(..., min_length=1)
    product: Optional[Product] = None


# ============================================================================
# Portal Schemas
# ============================================================================


class PortalRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    return_url: Optional[str] = None


class PortalResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    portal_url: str


# ============================================================================
# Subscription Schemas
# ============================================================================


class SubscriptionStatusResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tier: SubscriptionTier
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool
    billing_provider: Optional[BillingProvider] = None
    upstream_provider: Optional[str] = None


class CancelSubscriptionResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    subscription_id: str
    provider: str
    cancel_at_period_end: bool
    message: str = "Cancellation requested; access continues until the period ends"


class BillingEventResponse(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: int
    type: BillingEventType
    amount: Decimal
    currency: str
    status: BillingEventStatus
    provider: BillingProvider
    created_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BillingHistoryResponse(BaseModel):
    events: List[BillingEventResponse]


# ============================================================================
# Usage Schemas
# ============================================================================


class FeatureUsageResponse(BaseModel):
    used: int
    limit: int = Field(..., description="Daily cap; -1 means unlimited")


class UsageResponse(BaseModel):
    """Today's usage per metered feature."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tier: SubscriptionTier
    usage_date: date
    usage: Dict[MeteredFeature, FeatureUsageResponse]


# ============================================================================
# Plans Schemas
# ============================================================================


class PlanResponse(BaseModel):
    id: str
    name: str
    tier: SubscriptionTier
    price: Decimal
    currency: str
    interval: str
    features: List[str]


class PlansResponse(BaseModel):
    plans: List[PlanResponse]


class TierLimitsResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tier: SubscriptionTier
    daily_caps: Dict[MeteredFeature, int]
    max_spaces: int
    max_provider_connections: Optional[int]
    allowed_providers: Optional[List[str]]
    ml_categorization: bool
    monte_carlo_max_iterations: int
    monte_carlo_max_scenarios: int
    storage_bytes: int
    life_beat: bool
    household_views: bool
    collectibles_valuation: bool
