"""Service for retrieving billing plan information."""

from typing import Dict, List, Optional

from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.enums import MeteredFeature, SubscriptionTier
from packages.billing.models.domain.plans import LocalizedPlan, get_localized_plans
from packages.billing.models.domain.tier_limits import (
    TIER_FEATURE_LIMITS,
    TierFeatureLimits,
    get_daily_cap,
)
from packages.billing.services.provider_router import ProviderRouter

logger = get_logger(__name__)


class PlansService:
    """Plan catalog and tier entitlements. Static data, no I/O."""

    def __init__(self, router: Optional[ProviderRouter] = None):
        self.router = router or ProviderRouter()

    @trace_span
    def get_plans(self, country_code: Optional[str] = None) -> List[LocalizedPlan]:
        """Plans priced for the caller's country."""
        country = self.router.normalize_country(country_code)
        return get_localized_plans(country)

    @trace_span
    def get_tier_limits(self, tier: SubscriptionTier) -> TierFeatureLimits:
        return TIER_FEATURE_LIMITS[tier]

    @trace_span
    def get_daily_caps(self, tier: SubscriptionTier) -> Dict[MeteredFeature, int]:
        """Daily caps per metered feature; -1 means unlimited."""
        caps = {}
        for feature in MeteredFeature:
            cap = get_daily_cap(tier, feature)
            caps[feature] = -1 if cap is None else cap
        return caps
