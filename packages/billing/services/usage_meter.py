"""
Daily usage metering against tier caps.

Counters are keyed by UTC calendar day, so they reset at UTC midnight without
ever being decremented.
"""

from datetime import date, datetime, timezone
from typing import Optional

from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.billing.exceptions import SubscriberNotFound
from packages.billing.models.domain.enums import MeteredFeature, SubscriptionTier
from packages.billing.models.domain.tier_limits import get_daily_cap
from packages.billing.models.domain.usage import (
    ConsumeResult,
    FeatureUsage,
    UsageSummary,
)
from packages.billing.repositories.usage_repository import UsageCounterRepository
from packages.subscribers.repositories.subscriber_repository import (
    SubscriberRepository,
)

logger = get_logger(__name__)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


class UsageMeter:
    """
    record() and check_limit() are deliberately not serialized against each
    other: concurrent callers can each pass the check before either records,
    overshooting the cap by at most the number of concurrent callers. Callers
    that need a hard cap use try_consume(), which checks and increments in one
    statement.
    """

    def __init__(
        self,
        usage_repo: Optional[UsageCounterRepository] = None,
        subscriber_repo: Optional[SubscriberRepository] = None,
    ):
        self.usage_repo = usage_repo or UsageCounterRepository()
        self.subscriber_repo = subscriber_repo or SubscriberRepository()

    async def _tier_for(self, subscriber_id: str) -> SubscriptionTier:
        subscriber = await self.subscriber_repo.get(subscriber_id)
        if subscriber is None:
            raise SubscriberNotFound(subscriber_id)
        return subscriber.subscription_tier

    @trace_span
    async def record(self, subscriber_id: str, feature: MeteredFeature) -> int:
        """Count one use of `feature` today. Returns the new count."""
        count = await self.usage_repo.increment(subscriber_id, feature, utc_today())
        logger.debug(
            f"Recorded {feature.value} usage",
            extra={"subscriber_id": subscriber_id, "count": count},
        )
        return count

    @trace_span
    async def check_limit(self, subscriber_id: str, feature: MeteredFeature) -> bool:
        """True while today's count is below the tier's cap for `feature`."""
        tier = await self._tier_for(subscriber_id)
        if tier.is_unlimited():
            return True

        cap = get_daily_cap(tier, feature)
        if cap is None:
            return True
        if cap == 0:
            return False

        used = await self.usage_repo.get_count(subscriber_id, feature, utc_today())
        allowed = used < cap
        if not allowed:
            logger.info(
                f"Daily {feature.value} limit reached",
                extra={
                    "subscriber_id": subscriber_id,
                    "tier": tier.value,
                    "used": used,
                    "limit": cap,
                },
            )
        return allowed

    @trace_span
    async def try_consume(
        self, subscriber_id: str, feature: MeteredFeature
    ) -> ConsumeResult:
        """Check and count one use atomically. Never lets the count pass the cap."""
        tier = await self._tier_for(subscriber_id)
        today = utc_today()
        cap = None if tier.is_unlimited() else get_daily_cap(tier, feature)

        if cap is None:
            count = await self.usage_repo.increment(subscriber_id, feature, today)
            return ConsumeResult(allowed=True, feature=feature, count=count)

        count = await self.usage_repo.increment_below(
            subscriber_id, feature, today, cap
        )
        if count is None:
            current = await self.usage_repo.get_count(subscriber_id, feature, today)
            return ConsumeResult(
                allowed=False, feature=feature, count=current, limit=cap
            )
        return ConsumeResult(allowed=True, feature=feature, count=count, limit=cap)

    @trace_span
    async def summary(self, subscriber_id: str) -> UsageSummary:
        """Today's usage of every metered feature. A limit of -1 means unlimited."""
        tier = await self._tier_for(subscriber_id)
        today = utc_today()
        counts = await self.usage_repo.get_counts_for_day(subscriber_id, today)

        features = {}
        for feature in MeteredFeature:
            cap = None if tier.is_unlimited() else get_daily_cap(tier, feature)
            features[feature] = FeatureUsage(
                feature=feature,
                used=counts.get(feature, 0),
                limit=-1 if cap is None else cap,
            )

        return UsageSummary(
            subscriber_id=subscriber_id,
            tier=tier,
            usage_date=today,
            features=features,
        )
