"""
Stripe webhook handler for payment events.

Handles events from Stripe payment platform:
- Checkout session completion
- Subscription lifecycle events
- Invoice payment success/failure
- Charge refunds
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from fastapi import Request

from packages.billing.models.domain.enums import BillingProvider, ProviderEventKind
from packages.billing.models.domain.provider_event import ProviderEvent
from packages.billing.models.domain.stripe_webhooks import (
    StripeChargeData,
    StripeCheckoutSessionData,
    StripeInvoiceData,
    StripeSubscriptionData,
    StripeWebhookPayload,
    StripeWebhookType,
)
from packages.billing.providers.payment.stripe_payment import tier_for_price_id
from packages.billing.webhooks.intake import WebhookResponse, process_delivery

SIGNATURE_HEADER = "stripe-signature"

# Currencies Stripe does not express in hundredths
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga",
        "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
    }
)

_SUBSCRIPTION_KINDS = {
    StripeWebhookType.SUBSCRIPTION_CREATED.value: ProviderEventKind.SUBSCRIPTION_CREATED,
    StripeWebhookType.SUBSCRIPTION_UPDATED.value: ProviderEventKind.SUBSCRIPTION_UPDATED,
    StripeWebhookType.SUBSCRIPTION_DELETED.value: ProviderEventKind.SUBSCRIPTION_CANCELLED,
}


def from_minor_units(amount: Optional[int], currency: Optional[str]) -> Decimal:
    """Stripe amounts are integers in the currency's smallest unit."""
    value = Decimal(amount or 0)
    if (currency or "usd").lower() in ZERO_DECIMAL_CURRENCIES:
        return value
    return value / 100


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def _currency(value: Optional[str]) -> str:
    return (value or "usd").upper()


def translate_stripe_event(payload: StripeWebhookPayload) -> Optional[ProviderEvent]:
    """Map a Stripe event to a ProviderEvent, or None for types we don't act on."""
    obj = payload.data.object
    common = {
        "provider": BillingProvider.STRIPE,
        "provider_event_id": payload.id,
        "provider_event_type": payload.type,
    }

    if payload.type == StripeWebhookType.CHECKOUT_SESSION_COMPLETED.value:
        session = StripeCheckoutSessionData.model_validate(obj)
        return ProviderEvent(
            **common,
            kind=ProviderEventKind.CHECKOUT_COMPLETED,
            customer_id=session.customer,
            subscriber_id=session.metadata.userId,
            subscription_id=session.subscription,
            plan_slug=session.metadata.plan,
            amount=from_minor_units(session.amount_total, session.currency),
            currency=_currency(session.currency),
            organization_id=session.metadata.orgId,
            identity_user_id=session.metadata.janua_user_id,
            checkout_session_id=session.id,
        )

    if payload.type in _SUBSCRIPTION_KINDS:
        subscription = StripeSubscriptionData.model_validate(obj)
        price = subscription.first_price
        price_tier = tier_for_price_id(price.id if price else None)
        return ProviderEvent(
            **common,
            kind=_SUBSCRIPTION_KINDS[payload.type],
            customer_id=subscription.customer,
            subscriber_id=subscription.metadata.userId,
            subscription_id=subscription.id,
            plan_slug=subscription.metadata.plan,
            plan_tier=price_tier.value if price_tier else None,
            period_start=_timestamp(subscription.current_period_start),
            period_end=_timestamp(subscription.current_period_end),
            amount=from_minor_units(
                price.unit_amount if price else 0, subscription.currency
            ),
            currency=_currency(subscription.currency),
            organization_id=subscription.metadata.orgId,
            identity_user_id=subscription.metadata.janua_user_id,
            product_id=price.product_id if price else None,
            metadata={"status": subscription.status},
        )

    if payload.type in (
        StripeWebhookType.INVOICE_PAYMENT_SUCCEEDED.value,
        StripeWebhookType.INVOICE_PAYMENT_FAILED.value,
    ):
        invoice = StripeInvoiceData.model_validate(obj)
        succeeded = payload.type == StripeWebhookType.INVOICE_PAYMENT_SUCCEEDED.value
        return ProviderEvent(
            **common,
            kind=(
                ProviderEventKind.PAYMENT_SUCCEEDED
                if succeeded
                else ProviderEventKind.PAYMENT_FAILED
            ),
            customer_id=invoice.customer,
            subscription_id=invoice.subscription,
            amount=from_minor_units(
                invoice.amount_paid if succeeded else invoice.amount_due,
                invoice.currency,
            ),
            currency=_currency(invoice.currency),
            metadata={"invoice_id": invoice.id},
        )

    if payload.type == StripeWebhookType.CHARGE_REFUNDED.value:
        charge = StripeChargeData.model_validate(obj)
        return ProviderEvent(
            **common,
            kind=ProviderEventKind.REFUND_ISSUED,
            customer_id=charge.customer,
            amount=from_minor_units(charge.amount_refunded, charge.currency),
            currency=_currency(charge.currency),
            metadata={"charge_id": charge.id},
        )

    return None


async def handle_stripe_webhook(request: Request) -> WebhookResponse:
    """
    Handle incoming webhook from Stripe.

    The raw body is read before anything else; the signature covers those
    exact bytes.
    """
    body = await request.body()
    return await process_delivery(
        BillingProvider.STRIPE,
        body,
        request.headers.get(SIGNATURE_HEADER),
        StripeWebhookPayload,
        translate_stripe_event,
    )
