"""
Factory for getting payment provider instances.
"""

from packages.billing.models.domain.enums import BillingProvider
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.providers.payment.janua_payment import JanuaPaymentProvider
from packages.billing.providers.payment.stripe_payment import StripePaymentProvider


def get_payment_provider(provider: BillingProvider) -> PaymentProviderInterface:
    """
    Get the payment provider implementation for a routed provider.

    The match is exhaustive over BillingProvider.
    """
    if provider == BillingProvider.STRIPE:
        return StripePaymentProvider()
    if provider == BillingProvider.JANUA:
        return JanuaPaymentProvider()
    raise ValueError(f"Unsupported payment provider: {provider}")
