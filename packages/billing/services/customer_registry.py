"""
Subscriber <-> provider customer mapping.
"""

from typing import Callable, Optional

from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.billing.models.domain.enums import BillingProvider
from packages.billing.models.domain.routing import ProviderRoute
from packages.billing.providers.payment.factory import get_payment_provider
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.subscribers.models.domain.subscriber import Subscriber
from packages.subscribers.repositories.subscriber_repository import (
    SubscriberRepository,
)

logger = get_logger(__name__)


class CustomerRegistry:
    """
    Keeps one customer id per (subscriber, provider).

    A stored id is returned without any network call. Otherwise the provider
    creates the customer and the id is written only after that call succeeds,
    so a provider failure leaves the subscriber untouched.
    """

    def __init__(
        self,
        subscriber_repo: Optional[SubscriberRepository] = None,
        provider_factory: Callable[
            [BillingProvider], PaymentProviderInterface
        ] = get_payment_provider,
    ):
        self.subscriber_repo = subscriber_repo or SubscriberRepository()
        self.provider_factory = provider_factory

    @trace_span
    async def ensure_customer(
        self,
        subscriber: Subscriber,
        route: ProviderRoute,
        country_code: str,
        organization_id: Optional[str] = None,
    ) -> str:
        existing = subscriber.customer_id_for(route.provider)
        if existing:
            logger.info(
                "Reusing existing provider customer",
                extra={
                    "subscriber_id": subscriber.id,
                    "provider": route.provider.value,
                    "customer_id": existing,
                },
            )
            return existing

        provider = self.provider_factory(route.provider)
        # Raises ProviderUnavailable; nothing has been written yet
        customer_id = await provider.create_customer(
            subscriber_id=subscriber.id,
            email=subscriber.email,
            name=subscriber.name,
            route=route,
            country_code=country_code,
            organization_id=organization_id,
        )

        stored = await self.subscriber_repo.assign_customer_id(
            subscriber.id, route.provider, customer_id
        )
        if stored:
            logger.info(
                "Stored new provider customer",
                extra={
                    "subscriber_id": subscriber.id,
                    "provider": route.provider.value,
                    "customer_id": customer_id,
                },
            )
            return customer_id

        # A concurrent request filled the slot first; its id wins
        current = await self.subscriber_repo.get(subscriber.id)
        winner = current.customer_id_for(route.provider) if current else None
        logger.warning(
            "Customer slot filled concurrently; discarding newly created customer",
            extra={
                "subscriber_id": subscriber.id,
                "provider": route.provider.value,
                "orphan_customer_id": customer_id,
                "customer_id": winner,
            },
        )
        return winner or customer_id
