"""
Unit tests for Janua webhook translation and intake.
"""

import hashlib
import hmac
import json
from decimal import Decimal

import pytest
from unittest.mock import AsyncMock

from packages.billing.models.domain.enums import (
    BillingProvider,
    ProviderEventKind,
    WebhookOutcome,
)
from packages.billing.models.domain.janua_webhooks import JanuaWebhookPayload
from packages.billing.services.signature_verifier import SignatureVerifier
from packages.billing.webhooks.intake import process_delivery
from packages.billing.webhooks.janua_webhook import translate_janua_event

SECRET = "janua_intake"


def envelope(event_type: str, event_id: str = "jevt_1", **data) -> dict:
    body = {"customer_id": "jcus_1"}
    body.update(data)
    return {"id": event_id, "type": event_type, "data": body}


def translate(payload: dict):
    return translate_janua_event(JanuaWebhookPayload.model_validate(payload))


class TestTranslateJanuaEvent:
    def test_subscription_created(self):
        event = translate(
            envelope(
                "subscription.created",
                subscription_id="jsub_1",
                plan_id="essentials",
                provider="conekta",
                amount="79.00",
                currency="mxn",
                current_period_end=1_775_001_600,
                metadata={"userId": "user-1", "orgId": "org_1"},
            )
        )

        assert event.provider == BillingProvider.JANUA
        assert event.kind == ProviderEventKind.SUBSCRIPTION_CREATED
        assert event.customer_id == "jcus_1"
        assert event.plan_slug == "essentials"
        assert event.upstream_provider == "conekta"
        # Already major units
        assert event.amount == Decimal("79.00")
        assert event.currency == "MXN"
        assert event.organization_id == "org_1"
        assert event.period_end is not None

    @pytest.mark.parametrize(
        "event_type, kind",
        [
            ("subscription.updated", ProviderEventKind.SUBSCRIPTION_UPDATED),
            ("subscription.cancelled", ProviderEventKind.SUBSCRIPTION_CANCELLED),
            ("subscription.paused", ProviderEventKind.SUBSCRIPTION_PAUSED),
            ("subscription.resumed", ProviderEventKind.SUBSCRIPTION_RESUMED),
            ("payment.succeeded", ProviderEventKind.PAYMENT_SUCCEEDED),
            ("payment.failed", ProviderEventKind.PAYMENT_FAILED),
            ("payment.refunded", ProviderEventKind.REFUND_ISSUED),
        ],
    )
    def test_kind_mapping(self, event_type, kind):
        assert translate(envelope(event_type)).kind == kind

    def test_unknown_type(self):
        assert translate(envelope("customer.updated")) is None

    def test_missing_amount_is_zero(self):
        event = translate(envelope("payment.succeeded"))

        assert event.amount == Decimal("0")
        assert event.currency == "USD"


@pytest.mark.asyncio
class TestJanuaIntake:
    async def _deliver(self, payload: dict, signature=None, processor=None):
        body = json.dumps(payload).encode("utf-8")
        if signature is None:
            signature = hmac.new(SECRET.encode("utf-8"), body, hashlib.sha256).hexdigest()
        return await process_delivery(
            BillingProvider.JANUA,
            body,
            signature,
            JanuaWebhookPayload,
            translate_janua_event,
            verifier=SignatureVerifier(stripe_secret="unused", janua_secret=SECRET),
            processor=processor,
        )

    async def test_signed_delivery_is_processed(self):
        processor = AsyncMock()
        processor.process.return_value = WebhookOutcome.UNMAPPED

        status, response = await self._deliver(
            envelope("subscription.paused"), processor=processor
        )

        assert status == 200
        assert response == {"received": True, "status": "unmapped"}
        processor.process.assert_awaited_once()

    async def test_bad_signature_never_reaches_processor(self):
        processor = AsyncMock()

        status, response = await self._deliver(
            envelope("subscription.created"), signature="00" * 32, processor=processor
        )

        assert status == 200
        assert response["error"] == "invalid signature"
        processor.process.assert_not_called()
