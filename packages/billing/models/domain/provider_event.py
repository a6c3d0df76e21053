"""
Provider-neutral webhook event.

Both webhook translators produce a ProviderEvent; the processor never sees a
provider-specific payload.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from packages.billing.models.domain.enums import BillingProvider, ProviderEventKind


class ProviderEvent(BaseModel):
    provider: BillingProvider
    provider_event_id: str
    kind: ProviderEventKind
    provider_event_type: str

    # Subscriber resolution: by provider customer id, or for checkout
    # completion by the subscriber id carried in metadata
    customer_id: Optional[str] = None
    subscriber_id: Optional[str] = None

    subscription_id: Optional[str] = None
    plan_slug: Optional[str] = None
    # Tier resolved by the translator when no plan slug is available
    # (e.g. from a configured price id)
    plan_tier: Optional[str] = None

    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    amount: Decimal = Decimal("0")
    currency: str = "USD"

    # Cross-product linkage
    organization_id: Optional[str] = None
    identity_user_id: Optional[str] = None
    product_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    upstream_provider: Optional[str] = None

    metadata: Dict[str, Any] = Field(default_factory=dict)
