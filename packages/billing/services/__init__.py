"""Billing services."""

from packages.billing.services.checkout_service import CheckoutOrchestrator
from packages.billing.services.customer_registry import CustomerRegistry
from packages.billing.services.identity_dispatcher import IdentityDispatcher
from packages.billing.services.provider_router import ProviderRouter
from packages.billing.services.signature_verifier import SignatureVerifier
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.usage_meter import UsageMeter
from packages.billing.services.webhook_processor import WebhookProcessor

__all__ = [
    "CheckoutOrchestrator",
    "CustomerRegistry",
    "IdentityDispatcher",
    "ProviderRouter",
    "SignatureVerifier",
    "SubscriptionService",
    "UsageMeter",
    "WebhookProcessor",
]
