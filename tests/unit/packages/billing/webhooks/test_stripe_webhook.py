"""
Unit tests for Stripe webhook translation and the shared intake responses.
"""

import asyncio
import hashlib
import hmac
import json
import time
from decimal import Decimal

import pytest
from unittest.mock import AsyncMock
from sqlalchemy.exc import OperationalError

from packages.billing.models.domain.enums import (
    BillingProvider,
    ProviderEventKind,
    WebhookOutcome,
)
from packages.billing.models.domain.stripe_webhooks import StripeWebhookPayload
from packages.billing.services.signature_verifier import SignatureVerifier
from packages.billing.services.webhook_processor import WebhookProcessor
from packages.billing.webhooks.intake import process_delivery
from packages.billing.webhooks.stripe_webhook import (
    from_minor_units,
    translate_stripe_event,
)

SECRET = "whsec_intake"


def envelope(event_type: str, obj: dict, event_id: str = "evt_1") -> dict:
    return {
        "id": event_id,
        "type": event_type,
        "created": 1_773_446_400,
        "data": {"object": obj},
    }


def signed(payload: dict):
    body = json.dumps(payload).encode("utf-8")
    timestamp = int(time.time())
    digest = hmac.new(
        SECRET.encode("utf-8"), f"{timestamp}.".encode("utf-8") + body, hashlib.sha256
    ).hexdigest()
    return body, f"t={timestamp},v1={digest}"


def translate(payload: dict):
    return translate_stripe_event(StripeWebhookPayload.model_validate(payload))


SUBSCRIPTION = {
    "id": "sub_1",
    "customer": "cus_1",
    "status": "active",
    "currency": "usd",
    "current_period_start": 1_772_323_200,
    "current_period_end": 1_775_001_600,
    "metadata": {"userId": "user-1", "plan": "pro", "orgId": "org_1"},
    "items": {
        "data": [
            {"price": {"id": "price_pro_m", "product": "prod_foundry", "unit_amount": 1199}}
        ]
    },
}


class TestMinorUnits:
    def test_cents(self):
        assert from_minor_units(1199, "usd") == Decimal("11.99")

    def test_zero_decimal_currency(self):
        assert from_minor_units(1500, "JPY") == Decimal("1500")

    def test_missing_amount(self):
        assert from_minor_units(None, None) == Decimal("0")


class TestTranslateStripeEvent:
    def test_checkout_completed(self):
        event = translate(
            envelope(
                "checkout.session.completed",
                {
                    "id": "cs_1",
                    "customer": "cus_1",
                    "subscription": "sub_1",
                    "amount_total": 19900,
                    "currency": "mxn",
                    "metadata": {
                        "userId": "user-1",
                        "plan": "essentials",
                        "janua_user_id": "user-1",
                    },
                },
            )
        )

        assert event.kind == ProviderEventKind.CHECKOUT_COMPLETED
        assert event.provider == BillingProvider.STRIPE
        assert event.subscriber_id == "user-1"
        assert event.plan_slug == "essentials"
        assert event.checkout_session_id == "cs_1"
        assert event.identity_user_id == "user-1"
        assert event.amount == Decimal("199")
        assert event.currency == "MXN"

    def test_subscription_created(self):
        event = translate(envelope("customer.subscription.created", SUBSCRIPTION))

        assert event.kind == ProviderEventKind.SUBSCRIPTION_CREATED
        assert event.customer_id == "cus_1"
        assert event.subscription_id == "sub_1"
        assert event.plan_slug == "pro"
        assert event.product_id == "prod_foundry"
        assert event.amount == Decimal("11.99")
        assert event.period_end.year == 2026
        assert event.organization_id == "org_1"

    def test_subscription_tier_from_price_when_no_plan(self, monkeypatch):
        monkeypatch.setattr(
            "common.core.config.settings.stripe_price_id_pro", "price_pro_m"
        )
        obj = {**SUBSCRIPTION, "metadata": {}}

        event = translate(envelope("customer.subscription.updated", obj))

        assert event.kind == ProviderEventKind.SUBSCRIPTION_UPDATED
        assert event.plan_slug is None
        assert event.plan_tier == "pro"

    def test_subscription_deleted_is_cancellation(self):
        event = translate(envelope("customer.subscription.deleted", SUBSCRIPTION))

        assert event.kind == ProviderEventKind.SUBSCRIPTION_CANCELLED

    def test_invoice_events(self):
        invoice = {
            "id": "in_1",
            "customer": "cus_1",
            "subscription": "sub_1",
            "amount_due": 1199,
            "amount_paid": 1199,
            "currency": "usd",
        }

        paid = translate(envelope("invoice.payment_succeeded", invoice))
        failed = translate(
            envelope("invoice.payment_failed", {**invoice, "amount_paid": 0}, "evt_2")
        )

        assert paid.kind == ProviderEventKind.PAYMENT_SUCCEEDED
        assert paid.amount == Decimal("11.99")
        assert failed.kind == ProviderEventKind.PAYMENT_FAILED
        assert failed.amount == Decimal("11.99")

    def test_charge_refunded(self):
        event = translate(
            envelope(
                "charge.refunded",
                {"id": "ch_1", "customer": "cus_1", "amount_refunded": 500, "currency": "usd"},
            )
        )

        assert event.kind == ProviderEventKind.REFUND_ISSUED
        assert event.amount == Decimal("5")

    @pytest.mark.parametrize("event_type", ["invoice.paid", "customer.created"])
    def test_unhandled_types(self, event_type):
        assert translate(envelope(event_type, {"id": "x"})) is None


@pytest.fixture
def verifier():
    return SignatureVerifier(stripe_secret=SECRET, janua_secret="unused")


@pytest.fixture
def processor():
    processor = AsyncMock()
    processor.process.return_value = WebhookOutcome.PROCESSED
    return processor


async def deliver(body, signature, verifier, processor):
    return await process_delivery(
        BillingProvider.STRIPE,
        body,
        signature,
        StripeWebhookPayload,
        translate_stripe_event,
        verifier=verifier,
        processor=processor,
    )


@pytest.mark.asyncio
class TestStripeIntake:
    async def test_processed(self, verifier, processor):
        body, signature = signed(envelope("customer.subscription.created", SUBSCRIPTION))

        status, response = await deliver(body, signature, verifier, processor)

        assert status == 200
        assert response == {"received": True, "status": "processed"}
        event = processor.process.call_args.args[0]
        assert event.provider_event_id == "evt_1"

    async def test_invalid_signature_is_acknowledged_not_processed(
        self, verifier, processor
    ):
        body, _ = signed(envelope("customer.subscription.created", SUBSCRIPTION))

        status, response = await deliver(body, "t=1,v1=deadbeef", verifier, processor)

        assert status == 200
        assert response["error"] == "invalid signature"
        processor.process.assert_not_called()

    async def test_missing_secret_asks_for_retry(self, processor):
        body, signature = signed(envelope("customer.subscription.created", SUBSCRIPTION))
        verifier = SignatureVerifier(stripe_secret="", janua_secret="")

        status, response = await deliver(body, signature, verifier, processor)

        assert status == 503
        assert response["received"] is False

    async def test_malformed_payload(self, verifier, processor):
        body, signature = signed({"id": "evt_1", "type": "customer.subscription.created"})

        status, response = await deliver(body, signature, verifier, processor)

        assert status == 200
        assert response["error"] == "invalid payload"
        processor.process.assert_not_called()

    async def test_unhandled_type_is_ignored(self, verifier, processor):
        body, signature = signed(envelope("invoice.paid", {"id": "in_1"}))

        status, response = await deliver(body, signature, verifier, processor)

        assert (status, response["status"]) == (200, "ignored")
        processor.process.assert_not_called()

    async def test_duplicate_outcome_is_acknowledged(self, verifier, processor):
        processor.process.return_value = WebhookOutcome.DUPLICATE
        body, signature = signed(envelope("customer.subscription.created", SUBSCRIPTION))

        status, response = await deliver(body, signature, verifier, processor)

        assert (status, response["status"]) == (200, "duplicate")

    @pytest.mark.parametrize(
        "error, message",
        [
            (asyncio.TimeoutError(), "processing deadline exceeded"),
            (OperationalError("SELECT 1", {}, Exception("gone")), "storage unavailable"),
            (RuntimeError("bug"), "processing failed"),
        ],
    )
    async def test_transient_failures_ask_for_retry(
        self, verifier, processor, error, message
    ):
        processor.process.side_effect = error
        body, signature = signed(envelope("customer.subscription.created", SUBSCRIPTION))

        status, response = await deliver(body, signature, verifier, processor)

        assert status == 503
        assert response == {"received": False, "error": message}

    async def test_slow_processing_hits_the_deadline(self, verifier, mock_dispatcher):
        async def slow_lookup(*args, **kwargs):
            await asyncio.sleep(5)

        subscriber_repo = AsyncMock()
        subscriber_repo.get_by_customer_id = AsyncMock(side_effect=slow_lookup)
        slow_processor = WebhookProcessor(
            subscriber_repo=subscriber_repo,
            dispatcher=mock_dispatcher,
            deadline_seconds=0.05,
        )
        body, signature = signed(envelope("customer.subscription.created", SUBSCRIPTION))

        status, response = await deliver(body, signature, verifier, slow_processor)

        assert status == 503
        assert response == {"received": False, "error": "processing deadline exceeded"}
        assert not await slow_processor.event_repo.exists(BillingProvider.STRIPE, "evt_1")
        mock_dispatcher.schedule_tier_notification.assert_not_called()
