"""
Janua webhook handler.

Janua forwards lifecycle events from its upstream processors (Conekta for
Mexico, Polar elsewhere) in one envelope; `data.provider` names the upstream.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from fastapi import Request

from packages.billing.models.domain.enums import BillingProvider, ProviderEventKind
from packages.billing.models.domain.janua_webhooks import (
    JanuaWebhookPayload,
    JanuaWebhookType,
)
from packages.billing.models.domain.provider_event import ProviderEvent
from packages.billing.webhooks.intake import WebhookResponse, process_delivery

SIGNATURE_HEADER = "x-janua-signature"

_KINDS = {
    JanuaWebhookType.SUBSCRIPTION_CREATED.value: ProviderEventKind.SUBSCRIPTION_CREATED,
    JanuaWebhookType.SUBSCRIPTION_UPDATED.value: ProviderEventKind.SUBSCRIPTION_UPDATED,
    JanuaWebhookType.SUBSCRIPTION_CANCELLED.value: ProviderEventKind.SUBSCRIPTION_CANCELLED,
    JanuaWebhookType.SUBSCRIPTION_PAUSED.value: ProviderEventKind.SUBSCRIPTION_PAUSED,
    JanuaWebhookType.SUBSCRIPTION_RESUMED.value: ProviderEventKind.SUBSCRIPTION_RESUMED,
    JanuaWebhookType.PAYMENT_SUCCEEDED.value: ProviderEventKind.PAYMENT_SUCCEEDED,
    JanuaWebhookType.PAYMENT_FAILED.value: ProviderEventKind.PAYMENT_FAILED,
    JanuaWebhookType.PAYMENT_REFUNDED.value: ProviderEventKind.REFUND_ISSUED,
}


def _timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def translate_janua_event(payload: JanuaWebhookPayload) -> Optional[ProviderEvent]:
    kind = _KINDS.get(payload.type)
    if kind is None:
        return None

    data = payload.data
    return ProviderEvent(
        provider=BillingProvider.JANUA,
        provider_event_id=payload.id,
        kind=kind,
        provider_event_type=payload.type,
        customer_id=data.customer_id,
        subscriber_id=data.metadata.userId,
        subscription_id=data.subscription_id,
        plan_slug=data.plan_id,
        period_start=_timestamp(data.current_period_start),
        period_end=_timestamp(data.current_period_end),
        # Janua amounts are already in major units
        amount=data.amount if data.amount is not None else Decimal("0"),
        currency=(data.currency or "USD").upper(),
        organization_id=data.metadata.orgId,
        upstream_provider=data.provider,
        metadata={"status": data.status} if data.status else {},
    )


async def handle_janua_webhook(request: Request) -> WebhookResponse:
    body = await request.body()
    return await process_delivery(
        BillingProvider.JANUA,
        body,
        request.headers.get(SIGNATURE_HEADER),
        JanuaWebhookPayload,
        translate_janua_event,
    )
