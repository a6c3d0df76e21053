"""
Billing enums - strongly typed enumerations for tiers, providers and ledger states.
"""

from enum import Enum


class SubscriptionTier(str, Enum):
    """
    Ordered subscription tiers.

    community < essentials < pro. Rank decides whether a checkout is an upgrade.
    """

    COMMUNITY = "community"  # free, base tier
    ESSENTIALS = "essentials"  # mid tier
    PRO = "pro"  # top tier, unlimited metering

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    def is_base(self) -> bool:
        return self == SubscriptionTier.COMMUNITY

    def is_unlimited(self) -> bool:
        """Top tier is never metered."""
        return self == SubscriptionTier.PRO

    def __ge__(self, other):
        if isinstance(other, SubscriptionTier):
            return self.rank >= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, SubscriptionTier):
            return self.rank > other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, SubscriptionTier):
            return self.rank <= other.rank
        return NotImplemented

    def __lt__(self, other):
        if isinstance(other, SubscriptionTier):
            return self.rank < other.rank
        return NotImplemented


_TIER_RANK = {
    SubscriptionTier.COMMUNITY: 0,
    SubscriptionTier.ESSENTIALS: 1,
    SubscriptionTier.PRO: 2,
}


class BillingProvider(str, Enum):
    """
    Closed set of payment providers the engine dispatches to.

    STRIPE is the direct processor; JANUA is the federated billing broker which
    forwards to its own upstream processors.
    """

    STRIPE = "stripe"
    JANUA = "janua"

    @property
    def is_federated(self) -> bool:
        return self == BillingProvider.JANUA


class UpstreamProvider(str, Enum):
    """Processors the federated broker routes to."""

    CONEKTA = "conekta"  # Mexico
    POLAR = "polar"  # everywhere else


class Product(str, Enum):
    """Products that originate checkouts."""

    DHANAM = "dhanam"
    ENCLII = "enclii"
    TEZCA = "tezca"
    YANTRA4D = "yantra4d"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class BillingEventType(str, Enum):
    """Kinds of rows in the billing ledger."""

    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    REFUNDED = "refunded"


class BillingEventStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ProviderEventKind(str, Enum):
    """
    Provider-neutral webhook event kinds.

    Each provider's payload is translated into one of these before the
    state machine sees it.
    """

    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SUBSCRIPTION_PAUSED = "subscription_paused"
    SUBSCRIPTION_RESUMED = "subscription_resumed"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    CHECKOUT_COMPLETED = "checkout_completed"
    REFUND_ISSUED = "refund_issued"


class MeteredFeature(str, Enum):
    """Features counted per subscriber per UTC day."""

    ESG_CALCULATION = "esg_calculation"
    MONTE_CARLO_SIMULATION = "monte_carlo_simulation"
    GOAL_PROBABILITY = "goal_probability"
    SCENARIO_ANALYSIS = "scenario_analysis"
    PORTFOLIO_REBALANCE = "portfolio_rebalance"
    API_REQUEST = "api_request"


class AuditAction(str, Enum):
    BILLING_UPGRADE_INITIATED = "BILLING_UPGRADE_INITIATED"
    SUBSCRIPTION_ACTIVATED = "SUBSCRIPTION_ACTIVATED"
    SUBSCRIPTION_CANCELLED = "SUBSCRIPTION_CANCELLED"
    PAYMENT_FAILED = "PAYMENT_FAILED"


class AuditSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WebhookOutcome(str, Enum):
    """What webhook processing did with one delivery."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    UNMAPPED = "unmapped"
    IGNORED = "ignored"
