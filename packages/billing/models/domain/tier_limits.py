"""
Static per-tier limits.

Loaded once at import and exposed through read-only mappings; changing a
limit requires a deploy.
"""

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from packages.billing.models.domain.enums import MeteredFeature, SubscriptionTier

# None = unlimited, 0 = not entitled on this tier, N = daily cap
DailyCap = Optional[int]

UNLIMITED: DailyCap = None

MB = 1024 * 1024
GB = 1024 * MB


def _freeze(caps: dict) -> Mapping[MeteredFeature, DailyCap]:
    missing = set(MeteredFeature) - set(caps)
    if missing:
        raise ValueError(f"Daily caps missing for features: {sorted(missing)}")
    return MappingProxyType(dict(caps))


USAGE_CAPS: Mapping[SubscriptionTier, Mapping[MeteredFeature, DailyCap]] = (
    MappingProxyType(
        {
            SubscriptionTier.COMMUNITY: _freeze(
                {
                    MeteredFeature.ESG_CALCULATION: 5,
                    MeteredFeature.MONTE_CARLO_SIMULATION: 2,
                    MeteredFeature.GOAL_PROBABILITY: 0,
                    MeteredFeature.SCENARIO_ANALYSIS: 0,
                    MeteredFeature.PORTFOLIO_REBALANCE: 0,
                    MeteredFeature.API_REQUEST: 500,
                }
            ),
            SubscriptionTier.ESSENTIALS: _freeze(
                {
                    MeteredFeature.ESG_CALCULATION: 20,
                    MeteredFeature.MONTE_CARLO_SIMULATION: 10,
                    MeteredFeature.GOAL_PROBABILITY: 5,
                    MeteredFeature.SCENARIO_ANALYSIS: 3,
                    MeteredFeature.PORTFOLIO_REBALANCE: 0,
                    MeteredFeature.API_REQUEST: 5_000,
                }
            ),
            SubscriptionTier.PRO: _freeze(
                {feature: UNLIMITED for feature in MeteredFeature}
            ),
        }
    )
)


def get_daily_cap(tier: SubscriptionTier, feature: MeteredFeature) -> DailyCap:
    return USAGE_CAPS[tier][feature]


class TierFeatureLimits(BaseModel):
    """Non-metered entitlements of a tier. None means unlimited."""

    model_config = ConfigDict(frozen=True)

    max_spaces: int
    max_provider_connections: Optional[int]
    # None = every data provider is allowed
    allowed_providers: Optional[Tuple[str, ...]]
    ml_categorization: bool
    monte_carlo_max_iterations: int
    monte_carlo_max_scenarios: int
    storage_bytes: int
    life_beat: bool
    household_views: bool
    collectibles_valuation: bool


TIER_FEATURE_LIMITS: Mapping[SubscriptionTier, TierFeatureLimits] = MappingProxyType(
    {
        SubscriptionTier.COMMUNITY: TierFeatureLimits(
            max_spaces=1,
            max_provider_connections=0,
            allowed_providers=(),
            ml_categorization=False,
            monte_carlo_max_iterations=1_000,
            monte_carlo_max_scenarios=3,
            storage_bytes=0,
            life_beat=False,
            household_views=False,
            collectibles_valuation=False,
        ),
        SubscriptionTier.ESSENTIALS: TierFeatureLimits(
            max_spaces=2,
            max_provider_connections=3,
            allowed_providers=("belvo", "bitso"),
            ml_categorization=True,
            monte_carlo_max_iterations=5_000,
            monte_carlo_max_scenarios=6,
            storage_bytes=500 * MB,
            life_beat=False,
            household_views=False,
            collectibles_valuation=False,
        ),
        SubscriptionTier.PRO: TierFeatureLimits(
            max_spaces=5,
            max_provider_connections=None,
            allowed_providers=None,
            ml_categorization=True,
            monte_carlo_max_iterations=10_000,
            monte_carlo_max_scenarios=12,
            storage_bytes=5 * GB,
            life_beat=True,
            household_views=True,
            collectibles_valuation=True,
        ),
    }
)
