"""
Interface for payment providers.

Two implementations exist: the direct processor (Stripe) and the federated
billing broker (Janua). Implementations raise ProviderUnavailable for any
failure or timeout talking to the provider.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from packages.billing.models.domain.enums import BillingProvider
from packages.billing.models.domain.plans import PlanDefinition
from packages.billing.models.domain.routing import CheckoutSession, ProviderRoute


class PaymentProviderInterface(ABC):
    """Abstract interface for payment providers."""

    provider: BillingProvider

    @abstractmethod
    async def create_customer(
        self,
        subscriber_id: str,
        email: str,
        name: Optional[str],
        route: ProviderRoute,
        country_code: str,
        organization_id: Optional[str] = None,
    ) -> str:
        """
        Create a customer in the payment provider.

        Returns:
            customer_id: Payment provider customer ID
        """
        pass

    @abstractmethod
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
        """
        Create a hosted checkout session for a plan.

        Args:
            metadata: Attached to the session and the resulting subscription;
                comes back on the webhooks for this purchase.
        """
        pass

    @abstractmethod
    async def create_portal_session(
        self,
        customer_id: str,
        route: ProviderRoute,
        return_url: str,
    ) -> str:
        """
        Create a customer portal session for managing the subscription.

        Returns:
            portal_url: URL to customer portal
        """
        pass

    @abstractmethod
    async def cancel_subscription(
        self, subscription_id: str, route: ProviderRoute
    ) -> None:
        """Request cancellation. The tier changes when the provider's
        cancellation webhook arrives."""
        pass

    async def get_checkout_product_id(self, session_id: str) -> Optional[str]:
        """Product purchased in a checkout session, where the provider exposes it."""
        return None
