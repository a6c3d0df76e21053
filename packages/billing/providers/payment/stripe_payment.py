"""
Stripe implementation of payment provider.

The Stripe SDK is synchronous; every call runs in a worker thread under a
bounded timeout so a slow Stripe API cannot hang a request.
"""

import asyncio
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import stripe

from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.exceptions import ProviderNotConfigured, ProviderUnavailable
from packages.billing.models.domain.enums import (
    BillingInterval,
    BillingProvider,
    SubscriptionTier,
)
from packages.billing.models.domain.plans import PlanDefinition
from packages.billing.models.domain.routing import CheckoutSession, ProviderRoute
from packages.billing.providers.payment.interface import PaymentProviderInterface

logger = get_logger(__name__)


def build_price_ids() -> Mapping[Tuple[SubscriptionTier, BillingInterval], str]:
    """(tier, interval) -> Stripe price id, from settings. Empty ids are skipped."""
    configured = {
        (SubscriptionTier.ESSENTIALS, BillingInterval.MONTHLY): settings.stripe_price_id_essentials,
        (SubscriptionTier.ESSENTIALS, BillingInterval.YEARLY): settings.stripe_price_id_essentials_yearly,
        (SubscriptionTier.PRO, BillingInterval.MONTHLY): settings.stripe_price_id_pro,
        (SubscriptionTier.PRO, BillingInterval.YEARLY): settings.stripe_price_id_pro_yearly,
    }
    return MappingProxyType({key: value for key, value in configured.items() if value})


def tier_for_price_id(price_id: Optional[str]) -> Optional[SubscriptionTier]:
    """Reverse lookup used when a subscription carries no plan metadata."""
    if not price_id:
        return None
    for (tier, _interval), configured in build_price_ids().items():
        if configured == price_id:
            return tier
    return None


class StripePaymentProvider(PaymentProviderInterface):
    """Stripe-based payment implementation."""

    provider = BillingProvider.STRIPE

    def __init__(self, timeout_seconds: Optional[float] = None):
        """Initialize Stripe with API credentials."""
        stripe.api_key = settings.stripe_secret_key
        self.timeout_seconds = timeout_seconds or settings.provider_timeout_seconds
        self.price_ids = build_price_ids()

    async def _call(self, operation: str, fn: Callable[..., Any], **kwargs) -> Any:
        if not settings.stripe_secret_key:
            raise ProviderNotConfigured(self.provider.value, "stripe_secret_key")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, **kwargs), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Stripe {operation} timed out after {self.timeout_seconds}s",
                extra={"operation": operation},
            )
            raise ProviderUnavailable(self.provider.value, f"{operation} timed out")
        except stripe.StripeError as e:
            logger.error(
                f"Stripe {operation} failed: {str(e)}",
                extra={"operation": operation, "error": str(e)},
            )
            raise ProviderUnavailable(self.provider.value, str(e))

    @trace_span
    async def create_customer(
        self,
        subscriber_id: str,
        email: str,
        name: Optional[str],
        route: ProviderRoute,
        country_code: str,
        organization_id: Optional[str] = None,
    ) -> str:
        """Create a Stripe customer."""
        customer = await self._call(
            "customer.create",
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"userId": subscriber_id},
            # Retried creates within Stripe's idempotency window return the same customer
            idempotency_key=f"customer-create-{subscriber_id}",
        )

        logger.info(
            "Created Stripe customer",
            extra={"subscriber_id": subscriber_id, "customer_id": customer.id},
        )
        return customer.id

    @trace_span
    async def create_checkout_session(
        self,
        customer_id: str,
        customer_email: str,
        plan: PlanDefinition,
        route: ProviderRoute,
        country_code: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        organization_id: Optional[str] = None,
    ) -> CheckoutSession:
        """Create Stripe checkout session for the plan's price."""
        price_id = self.price_ids.get((plan.tier, plan.interval))
        if not price_id:
            raise ProviderNotConfigured(
                self.provider.value,
                f"price id for {plan.tier.value} {plan.interval.value}",
            )

        session = await self._call(
            "checkout.session.create",
            stripe.checkout.Session.create,
            customer=customer_id,
            line_items=[{"price": price_id, "quantity": 1}],
            mode="subscription",
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            # Copied onto the subscription so subscription webhooks carry it too
            subscription_data={"metadata": metadata},
        )

        logger.info(
            "Created Stripe checkout session",
            extra={
                "customer_id": customer_id,
                "plan": plan.slug,
                "session_id": session.id,
            },
        )
        return CheckoutSession(session_id=session.id, checkout_url=session.url)

    @trace_span
    async def create_portal_session(
        self,
        customer_id: str,
        route: ProviderRoute,
        return_url: str,
    ) -> str:
        """Create Stripe customer portal session."""
        session = await self._call(
            "billing_portal.session.create",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        logger.info("Created Stripe portal session", extra={"customer_id": customer_id})
        return session.url

    @trace_span
    async def cancel_subscription(
        self, subscription_id: str, route: ProviderRoute
    ) -> None:
        """Cancel at period end; Stripe sends customer.subscription.deleted when it ends."""
        await self._call(
            "subscription.modify",
            stripe.Subscription.modify,
            id=subscription_id,
            cancel_at_period_end=True,
        )
        logger.info(
            "Requested Stripe subscription cancellation",
            extra={"subscription_id": subscription_id},
        )

    @trace_span
    async def get_checkout_product_id(self, session_id: str) -> Optional[str]:
        """Read the purchased product from the session's line items."""
        session = await self._call(
            "checkout.session.retrieve",
            stripe.checkout.Session.retrieve,
            id=session_id,
            expand=["line_items"],
        )
        line_items = getattr(session, "line_items", None)
        items = getattr(line_items, "data", None) or []
        if not items:
            return None
        product = getattr(getattr(items[0], "price", None), "product", None)
        if product is None or isinstance(product, str):
            return product
        # Expanded product object
        return getattr(product, "id", None)
