"""Domain models for billing."""

from packages.billing.models.domain.enums import (
    BillingEventStatus,
    BillingEventType,
    BillingInterval,
    BillingProvider,
    MeteredFeature,
    Product,
    ProviderEventKind,
    SubscriptionTier,
    UpstreamProvider,
)

__all__ = [
    "BillingEventStatus",
    "BillingEventType",
    "BillingInterval",
    "BillingProvider",
    "MeteredFeature",
    "Product",
    "ProviderEventKind",
    "SubscriptionTier",
    "UpstreamProvider",
]
