"""
Plan catalog.

A plan slug is `[<product>_]<plan>[_yearly]`, e.g. `pro`, `essentials_yearly`,
`enclii_pro`. Slugs resolve to the tier they grant, the product that sold
them and the billing interval.
"""

from decimal import Decimal
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from packages.billing.models.domain.enums import (
    BillingInterval,
    Product,
    SubscriptionTier,
)

DEFAULT_PLAN = "pro"
DEFAULT_PRODUCT = Product.DHANAM

_YEARLY_SUFFIX = "_yearly"

# Base plan name -> tier granted. madfam is the cross-product bundle.
_BASE_PLAN_TIERS: Mapping[str, SubscriptionTier] = MappingProxyType(
    {
        "essentials": SubscriptionTier.ESSENTIALS,
        "pro": SubscriptionTier.PRO,
        "madfam": SubscriptionTier.PRO,
    }
)

# Legacy slugs kept for existing links
_LEGACY_PLANS: Mapping[str, Tuple[Product, str]] = MappingProxyType(
    {
        "sovereign": (Product.DHANAM, "pro"),
        "enclii_sovereign": (Product.ENCLII, "pro"),
        "enclii_ecosystem": (Product.ENCLII, "madfam"),
    }
)


class PlanDefinition(BaseModel):
    """A resolved plan slug."""

    model_config = ConfigDict(frozen=True)

    slug: str
    base_plan: str
    product: Product
    tier: SubscriptionTier
    interval: BillingInterval


def resolve_plan(slug: Optional[str]) -> Optional[PlanDefinition]:
    """Resolve a plan slug, or None when the slug is not in the catalog."""
    if not slug:
        return None
    slug = slug.strip().lower()

    if slug in _LEGACY_PLANS:
        product, base_plan = _LEGACY_PLANS[slug]
        return PlanDefinition(
            slug=slug,
            base_plan=base_plan,
            product=product,
            tier=_BASE_PLAN_TIERS[base_plan],
            interval=BillingInterval.MONTHLY,
        )

    remainder = slug
    interval = BillingInterval.MONTHLY
    if remainder.endswith(_YEARLY_SUFFIX):
        interval = BillingInterval.YEARLY
        remainder = remainder[: -len(_YEARLY_SUFFIX)]

    product = DEFAULT_PRODUCT
    prefix, sep, rest = remainder.partition("_")
    if sep:
        try:
            product = Product(prefix)
        except ValueError:
            return None
        remainder = rest

    tier = _BASE_PLAN_TIERS.get(remainder)
    if tier is None:
        return None

    return PlanDefinition(
        slug=slug,
        base_plan=remainder,
        product=product,
        tier=tier,
        interval=interval,
    )


def is_valid_plan(slug: Optional[str]) -> bool:
    return resolve_plan(slug) is not None


class LocalizedPlan(BaseModel):
    """A plan as listed to a customer in a given country."""

    id: str
    name: str
    tier: SubscriptionTier
    price: Decimal
    currency: str
    interval: str = "month"
    features: List[str]


# tier -> (MXN monthly price, USD monthly price)
_MONTHLY_PRICES: Mapping[SubscriptionTier, Tuple[Decimal, Decimal]] = (
    MappingProxyType(
        {
            SubscriptionTier.COMMUNITY: (Decimal("0"), Decimal("0")),
            SubscriptionTier.ESSENTIALS: (Decimal("79"), Decimal("4.99")),
            SubscriptionTier.PRO: (Decimal("199"), Decimal("11.99")),
        }
    )
)

_PLAN_FEATURES: Mapping[SubscriptionTier, Tuple[str, ...]] = MappingProxyType(
    {
        SubscriptionTier.COMMUNITY: (
            "5 ESG calculations/day",
            "2 Monte Carlo simulations/day",
            "1 space (personal)",
            "500 API requests/day",
            "Community support",
        ),
        SubscriptionTier.ESSENTIALS: (
            "20 ESG calculations/day",
            "10 Monte Carlo simulations/day",
            "AI categorization",
            "2 spaces (personal + business)",
            "Belvo + Bitso connections",
            "500 MB document storage",
            "Email support (48hr SLA)",
        ),
        SubscriptionTier.PRO: (
            "Unlimited ESG calculations",
            "Unlimited Monte Carlo simulations",
            "All provider connections",
            "Collectibles valuation",
            "Life Beat / estate planning",
            "Household views",
            "5 spaces, 5 GB storage",
            "Priority support (24hr SLA)",
        ),
    }
)


def get_localized_plans(country_code: Optional[str]) -> List[LocalizedPlan]:
    """List the three tiers priced in MXN for Mexico and USD everywhere else."""
    is_mexico = (country_code or "").upper() == "MX"
    currency = "MXN" if is_mexico else "USD"

    plans = []
    for tier in SubscriptionTier:
        mxn, usd = _MONTHLY_PRICES[tier]
        plans.append(
            LocalizedPlan(
                id=tier.value,
                name=tier.value.capitalize(),
                tier=tier,
                price=mxn if is_mexico else usd,
                currency=currency,
                features=list(_PLAN_FEATURES[tier]),
            )
        )
    return plans
