"""
Read models describing a subscriber's subscription.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from packages.billing.models.domain.enums import BillingProvider, SubscriptionTier


class SubscriptionStatus(BaseModel):
    """Current tier as seen by the dashboard."""

    subscriber_id: str
    tier: SubscriptionTier
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: bool
    billing_provider: Optional[BillingProvider] = None
    upstream_provider: Optional[str] = None


class CancellationRequested(BaseModel):
    """Cancellation forwarded to the provider; the tier changes on its webhook."""

    subscription_id: str
    provider: str
    cancel_at_period_end: bool = True
