"""
Unit tests for WebhookProcessor.

Runs against the SQLite test database; the identity dispatcher is a mock so
scheduled side effects are only recorded.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from packages.billing.exceptions import UnmappedCustomer
from packages.billing.models.domain.enums import (
    AuditAction,
    AuditSeverity,
    BillingEventStatus,
    BillingEventType,
    BillingProvider,
    ProviderEventKind,
    SubscriptionTier,
    WebhookOutcome,
)
from packages.billing.models.domain.provider_event import ProviderEvent
from packages.billing.repositories.billing_event_repository import (
    BillingEventRepository,
)
from packages.billing.services.audit_service import AuditService
from packages.billing.services.webhook_processor import WebhookProcessor
from packages.subscribers.repositories.subscriber_repository import (
    SubscriberRepository,
)

PERIOD_START = datetime(2026, 3, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2026, 4, 1, tzinfo=timezone.utc)


def stripe_event(kind: ProviderEventKind, event_id: str = "evt_1", **fields):
    data = dict(
        provider=BillingProvider.STRIPE,
        provider_event_id=event_id,
        kind=kind,
        provider_event_type=kind.value,
    )
    data.update(fields)
    return ProviderEvent(**data)


@pytest.fixture
def processor(mock_dispatcher, provider_factory):
    return WebhookProcessor(
        dispatcher=mock_dispatcher,
        provider_factory=provider_factory,
        deadline_seconds=5,
    )


async def _subscriber(subscriber_id):
    return await SubscriberRepository().get(subscriber_id)


async def _ledger(subscriber_id):
    return await BillingEventRepository().list_for_subscriber(subscriber_id)


@pytest.mark.asyncio
class TestSubscriptionLifecycle:
    async def test_created_grants_tier(self, processor, sample_subscriber, mock_dispatcher):
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CREATED,
            customer_id="cus_test123",
            subscription_id="sub_new",
            plan_tier="pro",
            period_start=PERIOD_START,
            period_end=PERIOD_END,
            amount=Decimal("11.99"),
            organization_id="org_1",
        )

        outcome = await processor.process(event)

        assert outcome == WebhookOutcome.PROCESSED
        subscriber = await _subscriber(sample_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.PRO
        assert subscriber.tier_started_at == PERIOD_START
        assert subscriber.tier_expires_at == PERIOD_END
        assert subscriber.billing_provider == BillingProvider.STRIPE
        assert subscriber.provider_subscription_id == "sub_new"

        ledger = await _ledger(sample_subscriber.id)
        assert len(ledger) == 1
        assert ledger[0].type == BillingEventType.SUBSCRIPTION_CREATED
        assert ledger[0].amount == Decimal("11.99")
        assert ledger[0].event_metadata["subscription_id"] == "sub_new"

        audits = await AuditService().list_for_subscriber(sample_subscriber.id)
        assert [a.action for a in audits] == [AuditAction.SUBSCRIPTION_ACTIVATED]
        mock_dispatcher.schedule_tier_notification.assert_called_once_with(
            "org_1", "cus_test123", None
        )
        mock_dispatcher.schedule_role_upgrade.assert_not_called()

    async def test_created_with_identity_user_schedules_role_upgrade(
        self, processor, sample_subscriber, mock_dispatcher
    ):
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CREATED,
            customer_id="cus_test123",
            plan_tier="essentials",
            identity_user_id="janua-user-1",
            product_id="prod_foundry",
        )

        await processor.process(event)

        mock_dispatcher.schedule_role_upgrade.assert_called_once_with(
            "janua-user-1", "prod_foundry"
        )
        subscriber = await _subscriber(sample_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.ESSENTIALS

    async def test_duplicate_delivery_is_applied_once(
        self, processor, sample_subscriber, mock_dispatcher
    ):
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CREATED,
            event_id="evt_dup",
            customer_id="cus_test123",
            plan_tier="pro",
            organization_id="org_1",
        )

        first = await processor.process(event)
        second = await processor.process(event)

        assert first == WebhookOutcome.PROCESSED
        assert second == WebhookOutcome.DUPLICATE
        assert len(await _ledger(sample_subscriber.id)) == 1
        assert len(await AuditService().list_for_subscriber(sample_subscriber.id)) == 1
        assert mock_dispatcher.schedule_tier_notification.call_count == 1

    async def test_unknown_customer_is_dropped(self, processor, sample_subscriber):
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CREATED,
            customer_id="cus_nobody",
            plan_tier="pro",
        )

        outcome = await processor.process(event)

        assert outcome == WebhookOutcome.UNMAPPED
        assert await _ledger(sample_subscriber.id) == []
        assert not await BillingEventRepository().exists(BillingProvider.STRIPE, "evt_1")

    async def test_unknown_customer_lookup_raises_unmapped(self, processor):
        event = stripe_event(
            ProviderEventKind.PAYMENT_SUCCEEDED, customer_id="cus_nobody"
        )

        with pytest.raises(UnmappedCustomer) as exc_info:
            await processor._lock_subscriber(event)

        assert exc_info.value.context == {
            "provider": "stripe",
            "customer_id": "cus_nobody",
        }

    async def test_unrecognized_plan_keeps_tier_but_records(
        self, processor, sample_subscriber, mock_dispatcher
    ):
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CREATED,
            customer_id="cus_test123",
            plan_tier="platinum",
        )

        outcome = await processor.process(event)

        assert outcome == WebhookOutcome.PROCESSED
        subscriber = await _subscriber(sample_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.COMMUNITY
        ledger = await _ledger(sample_subscriber.id)
        assert ledger[0].event_metadata["unrecognized_plan"] is True
        mock_dispatcher.schedule_tier_notification.assert_not_called()

    async def test_updated_refreshes_expiry_only(self, processor, pro_subscriber):
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_UPDATED,
            customer_id="cus_pro123",
            subscription_id="sub_pro123",
            plan_tier="essentials",
            period_end=PERIOD_END,
        )

        outcome = await processor.process(event)

        assert outcome == WebhookOutcome.PROCESSED
        subscriber = await _subscriber(pro_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.PRO
        assert subscriber.tier_expires_at == PERIOD_END
        assert await _ledger(pro_subscriber.id) == []

    async def test_updated_for_other_subscription_is_ignored(
        self, processor, pro_subscriber
    ):
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_UPDATED,
            customer_id="cus_pro123",
            subscription_id="sub_old",
            period_end=PERIOD_END,
        )

        await processor.process(event)

        subscriber = await _subscriber(pro_subscriber.id)
        assert subscriber.tier_expires_at is None

    async def test_cancelled_reverts_to_community(self, processor, pro_subscriber):
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CANCELLED,
            customer_id="cus_pro123",
            subscription_id="sub_pro123",
            amount=Decimal("11.99"),
        )

        outcome = await processor.process(event)

        assert outcome == WebhookOutcome.PROCESSED
        subscriber = await _subscriber(pro_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.COMMUNITY
        assert subscriber.tier_expires_at is None
        assert subscriber.provider_subscription_id is None
        assert subscriber.stripe_customer_id == "cus_pro123"

        ledger = await _ledger(pro_subscriber.id)
        assert ledger[0].type == BillingEventType.SUBSCRIPTION_CANCELLED
        assert ledger[0].amount == Decimal("0")

        audits = await AuditService().list_for_subscriber(pro_subscriber.id)
        assert audits[0].action == AuditAction.SUBSCRIPTION_CANCELLED
        assert audits[0].audit_metadata["previous_tier"] == "pro"

    async def test_cancel_of_stale_subscription_keeps_tier(
        self, processor, pro_subscriber
    ):
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CANCELLED,
            customer_id="cus_pro123",
            subscription_id="sub_previous",
        )

        outcome = await processor.process(event)

        assert outcome == WebhookOutcome.PROCESSED
        subscriber = await _subscriber(pro_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.PRO
        assert subscriber.provider_subscription_id == "sub_pro123"
        ledger = await _ledger(pro_subscriber.id)
        assert ledger[0].event_metadata["stale_subscription"] is True


@pytest.mark.asyncio
class TestOutOfOrderDelivery:
    async def test_created_after_cancel_keeps_community(
        self, processor, sample_subscriber, mock_dispatcher
    ):
        cancel = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CANCELLED,
            event_id="evt_cancel",
            customer_id="cus_test123",
            subscription_id="sub_A",
        )
        created = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CREATED,
            event_id="evt_create",
            customer_id="cus_test123",
            subscription_id="sub_A",
            plan_tier="pro",
            period_end=PERIOD_END,
            organization_id="org_1",
        )

        await processor.process(cancel)
        outcome = await processor.process(created)

        assert outcome == WebhookOutcome.PROCESSED
        subscriber = await _subscriber(sample_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.COMMUNITY
        assert subscriber.provider_subscription_id is None
        assert subscriber.tier_expires_at is None
        ledger = await _ledger(sample_subscriber.id)
        assert len(ledger) == 2
        created_row = next(
            e for e in ledger if e.type == BillingEventType.SUBSCRIPTION_CREATED
        )
        assert created_row.event_metadata["stale_subscription"] is True
        mock_dispatcher.schedule_tier_notification.assert_not_called()

    async def test_cancel_of_other_subscription_does_not_block_new_one(
        self, processor, sample_subscriber
    ):
        await processor.process(
            stripe_event(
                ProviderEventKind.SUBSCRIPTION_CANCELLED,
                event_id="evt_cancel_old",
                customer_id="cus_test123",
                subscription_id="sub_old",
            )
        )
        await processor.process(
            stripe_event(
                ProviderEventKind.SUBSCRIPTION_CREATED,
                event_id="evt_create_new",
                customer_id="cus_test123",
                subscription_id="sub_new",
                plan_tier="essentials",
            )
        )

        subscriber = await _subscriber(sample_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.ESSENTIALS
        assert subscriber.provider_subscription_id == "sub_new"

    async def test_updated_after_cancel_leaves_expiry_cleared(
        self, processor, pro_subscriber
    ):
        await processor.process(
            stripe_event(
                ProviderEventKind.SUBSCRIPTION_CANCELLED,
                event_id="evt_cancel",
                customer_id="cus_pro123",
                subscription_id="sub_pro123",
            )
        )
        outcome = await processor.process(
            stripe_event(
                ProviderEventKind.SUBSCRIPTION_UPDATED,
                event_id="evt_update",
                customer_id="cus_pro123",
                subscription_id="sub_pro123",
                period_end=datetime(2026, 5, 1, tzinfo=timezone.utc),
            )
        )

        assert outcome == WebhookOutcome.PROCESSED
        subscriber = await _subscriber(pro_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.COMMUNITY
        assert subscriber.tier_expires_at is None

    async def test_updated_before_created(self, processor, sample_subscriber):
        updated = stripe_event(
            ProviderEventKind.SUBSCRIPTION_UPDATED,
            event_id="evt_update",
            customer_id="cus_test123",
            subscription_id="sub_A",
            period_end=datetime(2026, 5, 1, tzinfo=timezone.utc),
        )
        created = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CREATED,
            event_id="evt_create",
            customer_id="cus_test123",
            subscription_id="sub_A",
            plan_tier="pro",
            period_start=PERIOD_START,
            period_end=PERIOD_END,
        )

        first = await processor.process(updated)
        after_update = await _subscriber(sample_subscriber.id)
        second = await processor.process(created)

        assert (first, second) == (WebhookOutcome.PROCESSED, WebhookOutcome.PROCESSED)
        assert after_update.subscription_tier == SubscriptionTier.COMMUNITY
        assert after_update.tier_expires_at is None
        subscriber = await _subscriber(sample_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.PRO
        assert subscriber.tier_expires_at == PERIOD_END
        assert subscriber.provider_subscription_id == "sub_A"


@pytest.mark.asyncio
class TestPayments:
    async def test_payment_succeeded_is_ledgered(self, processor, pro_subscriber):
        event = stripe_event(
            ProviderEventKind.PAYMENT_SUCCEEDED,
            customer_id="cus_pro123",
            amount=Decimal("199.00"),
            currency="mxn",
            metadata={"invoice_id": "in_123", "status": "paid"},
        )

        await processor.process(event)

        ledger = await _ledger(pro_subscriber.id)
        assert ledger[0].type == BillingEventType.PAYMENT_SUCCEEDED
        assert ledger[0].event_metadata["invoice_id"] == "in_123"
        assert ledger[0].event_metadata["status"] == "paid"
        assert ledger[0].status == BillingEventStatus.SUCCEEDED
        assert ledger[0].currency == "MXN"
        assert ledger[0].amount == Decimal("199.00")

    async def test_payment_failed_keeps_tier(self, processor, pro_subscriber):
        event = stripe_event(
            ProviderEventKind.PAYMENT_FAILED,
            customer_id="cus_pro123",
            amount=Decimal("11.99"),
        )

        await processor.process(event)

        subscriber = await _subscriber(pro_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.PRO
        ledger = await _ledger(pro_subscriber.id)
        assert ledger[0].type == BillingEventType.PAYMENT_FAILED
        assert ledger[0].status == BillingEventStatus.FAILED
        audits = await AuditService().list_for_subscriber(pro_subscriber.id)
        assert audits[0].action == AuditAction.PAYMENT_FAILED
        assert audits[0].severity == AuditSeverity.HIGH

    async def test_refund_is_ledgered(self, processor, pro_subscriber):
        event = stripe_event(
            ProviderEventKind.REFUND_ISSUED,
            customer_id="cus_pro123",
            amount=Decimal("5.00"),
        )

        await processor.process(event)

        ledger = await _ledger(pro_subscriber.id)
        assert ledger[0].type == BillingEventType.REFUNDED


@pytest.mark.asyncio
class TestCheckoutCompleted:
    async def test_grants_tier_from_metadata(
        self, processor, new_subscriber, mock_dispatcher, provider_factory
    ):
        event = stripe_event(
            ProviderEventKind.CHECKOUT_COMPLETED,
            subscriber_id=new_subscriber.id,
            customer_id="cus_fresh",
            plan_slug="essentials",
            subscription_id="sub_fresh",
            checkout_session_id="cs_1",
            identity_user_id=new_subscriber.id,
        )

        outcome = await processor.process(event)

        assert outcome == WebhookOutcome.PROCESSED
        subscriber = await _subscriber(new_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.ESSENTIALS
        assert subscriber.billing_provider == BillingProvider.STRIPE
        assert subscriber.provider_subscription_id == "sub_fresh"
        assert subscriber.tier_started_at is not None

        mock_dispatcher.schedule_role_upgrade_for_checkout.assert_called_once()
        args = mock_dispatcher.schedule_role_upgrade_for_checkout.call_args.args
        assert args[:2] == (new_subscriber.id, "cs_1")
        provider_factory.assert_called_with(BillingProvider.STRIPE)

    async def test_unknown_subscriber_id_is_unmapped(self, processor):
        event = stripe_event(
            ProviderEventKind.CHECKOUT_COMPLETED,
            subscriber_id="00000000-0000-0000-0000-000000000000",
            plan_slug="pro",
        )

        assert await processor.process(event) == WebhookOutcome.UNMAPPED


@pytest.mark.asyncio
class TestJanuaEvents:
    async def test_paused_changes_nothing(self, processor, janua_subscriber):
        event = ProviderEvent(
            provider=BillingProvider.JANUA,
            provider_event_id="jevt_1",
            kind=ProviderEventKind.SUBSCRIPTION_PAUSED,
            provider_event_type="subscription.paused",
            customer_id="jcus_test123",
        )

        outcome = await processor.process(event)

        assert outcome == WebhookOutcome.PROCESSED
        subscriber = await _subscriber(janua_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.COMMUNITY
        assert await _ledger(janua_subscriber.id) == []

    async def test_resumed_regrants_plan_tier(self, processor, janua_subscriber):
        event = ProviderEvent(
            provider=BillingProvider.JANUA,
            provider_event_id="jevt_2",
            kind=ProviderEventKind.SUBSCRIPTION_RESUMED,
            provider_event_type="subscription.resumed",
            customer_id="jcus_test123",
            subscription_id="jsub_1",
            plan_slug="pro",
            period_end=PERIOD_END,
        )

        await processor.process(event)

        subscriber = await _subscriber(janua_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.PRO
        assert subscriber.billing_provider == BillingProvider.JANUA
        assert subscriber.provider_subscription_id == "jsub_1"
        assert subscriber.tier_expires_at == PERIOD_END

    async def test_janua_created_records_upstream(self, processor, janua_subscriber):
        event = ProviderEvent(
            provider=BillingProvider.JANUA,
            provider_event_id="jevt_3",
            kind=ProviderEventKind.SUBSCRIPTION_CREATED,
            provider_event_type="subscription.created",
            customer_id="jcus_test123",
            subscription_id="jsub_2",
            plan_slug="essentials",
            upstream_provider="conekta",
            amount=Decimal("79"),
            currency="MXN",
        )

        await processor.process(event)

        subscriber = await _subscriber(janua_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.ESSENTIALS
        assert subscriber.upstream_provider == "conekta"
        ledger = await _ledger(janua_subscriber.id)
        assert ledger[0].provider == BillingProvider.JANUA
        assert ledger[0].event_metadata["upstream_provider"] == "conekta"


@pytest.mark.asyncio
class TestFailureHandling:
    async def test_storage_failure_commits_nothing(
        self, processor, sample_subscriber, mock_dispatcher, monkeypatch
    ):
        async def broken_record(_):
            raise RuntimeError("disk full")

        monkeypatch.setattr(processor.event_repo, "record", broken_record)
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CREATED,
            customer_id="cus_test123",
            plan_tier="pro",
            organization_id="org_1",
        )

        with pytest.raises(RuntimeError):
            await processor.process(event)

        subscriber = await _subscriber(sample_subscriber.id)
        assert subscriber.subscription_tier == SubscriptionTier.COMMUNITY
        mock_dispatcher.schedule_tier_notification.assert_not_called()

    async def test_side_effect_failure_is_swallowed(
        self, processor, sample_subscriber, mock_dispatcher
    ):
        mock_dispatcher.schedule_tier_notification.side_effect = RuntimeError("no loop")
        event = stripe_event(
            ProviderEventKind.SUBSCRIPTION_CREATED,
            customer_id="cus_test123",
            plan_tier="pro",
            organization_id="org_1",
        )

        outcome = await processor.process(event)

        assert outcome == WebhookOutcome.PROCESSED
