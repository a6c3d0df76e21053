"""
Domain models for daily usage metering.
"""

from datetime import date
from typing import Dict, Optional
from pydantic import BaseModel, ConfigDict

from packages.billing.models.domain.enums import MeteredFeature, SubscriptionTier


class UsageCounter(BaseModel):
    """Count of one feature used by one subscriber on one UTC day."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    subscriber_id: str
    feature: MeteredFeature
    usage_date: date
    count: int


class FeatureUsage(BaseModel):
    """Today's usage of one feature against its cap."""

    feature: MeteredFeature
    used: int
    # -1 = unlimited
    limit: int

    @property
    def remaining(self) -> Optional[int]:
        if self.limit < 0:
            return None
        return max(0, self.limit - self.used)


class UsageSummary(BaseModel):
    """
    Today's usage for every metered feature.

    Used by the dashboard to render quota bars.
    """

    subscriber_id: str
    tier: SubscriptionTier
    usage_date: date
    features: Dict[MeteredFeature, FeatureUsage]


class ConsumeResult(BaseModel):
    """Outcome of an atomic increment-and-compare."""

    allowed: bool
    feature: MeteredFeature
    # Post-increment count when allowed, current count otherwise
    count: int
    limit: Optional[int] = None
