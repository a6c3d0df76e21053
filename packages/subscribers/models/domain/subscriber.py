"""
Domain models for subscribers.
"""

from datetime import datetime, timezone
from typing import Optional
from pydantic import BaseModel, ConfigDict

from packages.billing.models.domain.enums import BillingProvider, SubscriptionTier


class Subscriber(BaseModel):
    """
    Subscriber domain model.

    Tier fields are written only by webhook processing; customer id slots are
    written only when a provider customer is created.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    name: Optional[str] = None
    country_code: Optional[str] = None

    subscription_tier: SubscriptionTier = SubscriptionTier.COMMUNITY
    tier_started_at: Optional[datetime] = None
    tier_expires_at: Optional[datetime] = None

    stripe_customer_id: Optional[str] = None
    janua_customer_id: Optional[str] = None

    billing_provider: Optional[BillingProvider] = None
    upstream_provider: Optional[str] = None
    provider_subscription_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def customer_id_for(self, provider: BillingProvider) -> Optional[str]:
        """Stored customer id for a provider, if one was ever created."""
        if provider == BillingProvider.STRIPE:
            return self.stripe_customer_id
        return self.janua_customer_id

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Paid tier that has not expired."""
        if self.subscription_tier.is_base():
            return False
        if self.tier_expires_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return self.tier_expires_at > now


class SubscriberCreateModel(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    country_code: Optional[str] = None
    subscription_tier: SubscriptionTier = SubscriptionTier.COMMUNITY


class SubscriberTierUpdateModel(BaseModel):
    """Tier transition written by webhook processing.

    Build with only the fields that change; unset fields are left alone and an
    explicit None clears the column.
    """

    subscription_tier: Optional[SubscriptionTier] = None
    tier_started_at: Optional[datetime] = None
    tier_expires_at: Optional[datetime] = None
    billing_provider: Optional[BillingProvider] = None
    upstream_provider: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
