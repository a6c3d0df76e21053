"""
Subscriber-facing subscription operations: status, history, portal, cancel.
"""

from typing import List, Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.exceptions import (
    NoActiveSubscription,
    NoBillingAccount,
    SubscriberNotFound,
    UntrustedRedirect,
)
from packages.billing.models.domain.billing_event import BillingEvent
from packages.billing.models.domain.enums import BillingProvider
from packages.billing.models.domain.subscription import (
    CancellationRequested,
    SubscriptionStatus,
)
from packages.billing.providers.payment.factory import get_payment_provider
from packages.billing.repositories.billing_event_repository import (
    BillingEventRepository,
)
from packages.billing.services.checkout_service import is_trusted_return_url
from packages.billing.services.provider_router import ProviderRouter
from packages.subscribers.models.domain.subscriber import Subscriber
from packages.subscribers.repositories.subscriber_repository import (
    SubscriberRepository,
)

logger = get_logger(__name__)


class SubscriptionService:
    """Read paths and provider-side requests. Never writes a tier."""

    def __init__(
        self,
        subscriber_repo: Optional[SubscriberRepository] = None,
        event_repo: Optional[BillingEventRepository] = None,
        router: Optional[ProviderRouter] = None,
        provider_factory=get_payment_provider,
    ):
        self.subscriber_repo = subscriber_repo or SubscriberRepository()
        self.event_repo = event_repo or BillingEventRepository()
        self.router = router or ProviderRouter()
        self.provider_factory = provider_factory

    async def _require_subscriber(self, subscriber_id: str) -> Subscriber:
        subscriber = await self.subscriber_repo.get(subscriber_id)
        if subscriber is None:
            raise SubscriberNotFound(subscriber_id)
        return subscriber

    @staticmethod
    def _active_provider(subscriber: Subscriber) -> BillingProvider:
        """Provider currently billing the subscriber, else the first one used."""
        if subscriber.billing_provider is not None:
            return subscriber.billing_provider
        if subscriber.janua_customer_id and not subscriber.stripe_customer_id:
            return BillingProvider.JANUA
        return BillingProvider.STRIPE

    @trace_span
    async def get_status(self, subscriber_id: str) -> SubscriptionStatus:
        subscriber = await self._require_subscriber(subscriber_id)
        return SubscriptionStatus(
            subscriber_id=subscriber.id,
            tier=subscriber.subscription_tier,
            started_at=subscriber.tier_started_at,
            expires_at=subscriber.tier_expires_at,
            is_active=subscriber.is_active(),
            billing_provider=subscriber.billing_provider,
            upstream_provider=subscriber.upstream_provider,
        )

    @trace_span
    async def get_history(
        self, subscriber_id: str, limit: int = 20
    ) -> List[BillingEvent]:
        """Newest ledger rows first."""
        return await self.event_repo.list_for_subscriber(subscriber_id, limit=limit)

    @trace_span
    async def create_portal_session(
        self, subscriber_id: str, return_url: Optional[str] = None
    ) -> str:
        """
        Portal URL from the provider that bills the subscriber.

        Raises:
            NoBillingAccount: subscriber has no customer id with that provider
        """
        if return_url and not is_trusted_return_url(return_url):
            raise UntrustedRedirect(return_url)

        subscriber = await self._require_subscriber(subscriber_id)
        provider_name = self._active_provider(subscriber)
        customer_id = subscriber.customer_id_for(provider_name)
        if not customer_id:
            raise NoBillingAccount(subscriber_id, provider_name.value)

        route = self.router.route_existing(provider_name, subscriber.country_code)
        provider = self.provider_factory(provider_name)
        portal_url = await provider.create_portal_session(
            customer_id=customer_id,
            route=route,
            return_url=return_url or f"{settings.web_url}/billing",
        )
        logger.info(
            f"Portal session created via {route.label}",
            extra={"subscriber_id": subscriber_id, "provider": route.label},
        )
        return portal_url

    @trace_span
    async def cancel(self, subscriber_id: str) -> CancellationRequested:
        """
        Ask the active provider to cancel at period end.

        The subscriber keeps the tier until the provider's cancellation
        webhook arrives.
        """
        subscriber = await self._require_subscriber(subscriber_id)
        if not subscriber.provider_subscription_id or subscriber.billing_provider is None:
            raise NoActiveSubscription(subscriber_id)

        route = self.router.route_existing(
            subscriber.billing_provider, subscriber.country_code
        )
        provider = self.provider_factory(subscriber.billing_provider)
        await provider.cancel_subscription(subscriber.provider_subscription_id, route)

        logger.info(
            "Cancellation requested",
            extra={
                "subscriber_id": subscriber_id,
                "provider": route.label,
                "subscription_id": subscriber.provider_subscription_id,
            },
        )
        return CancellationRequested(
            subscription_id=subscriber.provider_subscription_id,
            provider=route.label,
        )
