import pytest
from unittest.mock import AsyncMock, MagicMock

from packages.billing.models.domain.enums import BillingProvider
from packages.billing.models.domain.routing import CheckoutSession


@pytest.fixture
def mock_payment_provider():
    """Create a mock payment provider instance for testing."""
    provider = AsyncMock()
    provider.provider = BillingProvider.STRIPE
    provider.create_customer = AsyncMock(return_value="cus_new123")
    provider.create_checkout_session = AsyncMock(
        return_value=CheckoutSession(
            session_id="cs_test123",
            checkout_url="https://checkout.stripe.com/c/pay/cs_test123",
        )
    )
    provider.create_portal_session = AsyncMock(
        return_value="https://billing.stripe.com/p/session/test123"
    )
    provider.cancel_subscription = AsyncMock(return_value=None)
    provider.get_checkout_product_id = AsyncMock(return_value=None)
    return provider


@pytest.fixture
def provider_factory(mock_payment_provider):
    """Factory returning the mock provider for every BillingProvider."""
    return MagicMock(return_value=mock_payment_provider)


@pytest.fixture
def mock_dispatcher():
    """Create a mock identity dispatcher; scheduling calls are recorded only."""
    dispatcher = MagicMock()
    dispatcher.schedule_role_upgrade = MagicMock()
    dispatcher.schedule_role_upgrade_for_checkout = MagicMock()
    dispatcher.schedule_tier_notification = MagicMock()
    return dispatcher
