"""
Webhook state machine.

Consumes provider-neutral ProviderEvents, applies tier transitions to the
subscriber and appends to the billing ledger. Everything for one event runs in
one transaction holding the subscriber's row lock; identity side effects are
scheduled only after that transaction has committed.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, log_span_event, trace_span
from common.db.scoped import transaction
from packages.billing.exceptions import UnmappedCustomer
from packages.billing.models.domain.billing_event import BillingEventCreateModel
from packages.billing.models.domain.enums import (
    AuditAction,
    AuditSeverity,
    BillingEventStatus,
    BillingEventType,
    ProviderEventKind,
    SubscriptionTier,
    WebhookOutcome,
)
from packages.billing.models.domain.plans import resolve_plan
from packages.billing.models.domain.provider_event import ProviderEvent
from packages.billing.providers.payment.factory import get_payment_provider
from packages.billing.repositories.billing_event_repository import (
    BillingEventRepository,
)
from packages.billing.services.audit_service import AuditService
from packages.billing.services.identity_dispatcher import IdentityDispatcher
from packages.subscribers.models.domain.subscriber import (
    Subscriber,
    SubscriberTierUpdateModel,
)
from packages.subscribers.repositories.subscriber_repository import (
    SubscriberRepository,
)

logger = get_logger(__name__)

SideEffect = Callable[[], Any]
Handler = Callable[
    [ProviderEvent, Subscriber, List[SideEffect]],
    Awaitable[Optional[BillingEventCreateModel]],
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class WebhookProcessor:
    """
    Applies verified provider events.

    | kind                   | subscriber effect                         | ledger           |
    |------------------------|-------------------------------------------|------------------|
    | subscription created   | grant plan tier, period, subscription id  | created          |
    | subscription updated   | refresh tier expiry                       | none             |
    | subscription cancelled | back to community, clear linkage          | cancelled, 0     |
    | subscription paused    | none (logged)                             | none             |
    | subscription resumed   | re-grant plan tier                        | none             |
    | payment succeeded      | none                                      | payment, paid    |
    | payment failed         | none, tier is kept                        | payment, failed  |
    | checkout completed     | grant plan tier from metadata             | created          |
    | refund issued          | none                                      | refunded         |

    A delivery whose (provider, event id) is already in the ledger is
    acknowledged and dropped. A customer id no subscriber owns is logged and
    dropped.
    """

    def __init__(
        self,
        subscriber_repo: Optional[SubscriberRepository] = None,
        event_repo: Optional[BillingEventRepository] = None,
        audit_service: Optional[AuditService] = None,
        dispatcher: Optional[IdentityDispatcher] = None,
        provider_factory=get_payment_provider,
        deadline_seconds: Optional[float] = None,
    ):
        self.subscriber_repo = subscriber_repo or SubscriberRepository()
        self.event_repo = event_repo or BillingEventRepository()
        self.audit_service = audit_service or AuditService()
        self.dispatcher = dispatcher or IdentityDispatcher()
        self.provider_factory = provider_factory
        self.deadline_seconds = deadline_seconds or settings.webhook_deadline_seconds

        self._handlers: Dict[ProviderEventKind, Handler] = {
            ProviderEventKind.SUBSCRIPTION_CREATED: self._on_subscription_created,
            ProviderEventKind.SUBSCRIPTION_UPDATED: self._on_subscription_updated,
            ProviderEventKind.SUBSCRIPTION_CANCELLED: self._on_subscription_cancelled,
            ProviderEventKind.SUBSCRIPTION_PAUSED: self._on_subscription_paused,
            ProviderEventKind.SUBSCRIPTION_RESUMED: self._on_subscription_resumed,
            ProviderEventKind.PAYMENT_SUCCEEDED: self._on_payment_succeeded,
            ProviderEventKind.PAYMENT_FAILED: self._on_payment_failed,
            ProviderEventKind.CHECKOUT_COMPLETED: self._on_checkout_completed,
            ProviderEventKind.REFUND_ISSUED: self._on_refund_issued,
        }

    @trace_span
    async def process(self, event: ProviderEvent) -> WebhookOutcome:
        """
        Apply one event.

        Raises:
            asyncio.TimeoutError: the internal deadline passed; nothing was committed
            SQLAlchemyError: storage failure; nothing was committed
        """
        log_context = self._log_context(event)
        try:
            outcome, side_effects = await asyncio.wait_for(
                self._apply(event), timeout=self.deadline_seconds
            )
        except IntegrityError:
            # A concurrent delivery of the same event committed first
            if await self.event_repo.exists(event.provider, event.provider_event_id):
                logger.info(
                    "Duplicate webhook delivery lost the insert race",
                    extra=log_context,
                )
                return WebhookOutcome.DUPLICATE
            raise

        for effect in side_effects:
            try:
                effect()
            except Exception as e:
                logger.error(
                    f"Failed to schedule webhook side effect: {e!r}",
                    extra=log_context,
                )

        logger.info(f"Webhook {outcome.value}", extra=log_context)
        return outcome

    async def _apply(
        self, event: ProviderEvent
    ) -> Tuple[WebhookOutcome, List[SideEffect]]:
        side_effects: List[SideEffect] = []
        log_context = self._log_context(event)

        async with transaction():
            if await self.event_repo.exists(event.provider, event.provider_event_id):
                logger.info("Duplicate webhook delivery dropped", extra=log_context)
                return WebhookOutcome.DUPLICATE, []

            try:
                subscriber = await self._lock_subscriber(event)
            except UnmappedCustomer as e:
                logger.warning(
                    f"{e.detail}; dropping", extra={**log_context, **e.context}
                )
                return WebhookOutcome.UNMAPPED, []

            handler = self._handlers[event.kind]
            ledger_entry = await handler(event, subscriber, side_effects)
            if ledger_entry is not None:
                await self.event_repo.record(ledger_entry)

        return WebhookOutcome.PROCESSED, side_effects

    async def _lock_subscriber(self, event: ProviderEvent) -> Subscriber:
        """
        Resolve and row-lock the subscriber the event is about.

        Raises:
            UnmappedCustomer: no subscriber owns the event's customer or subscriber id
        """
        subscriber = None
        if event.kind == ProviderEventKind.CHECKOUT_COMPLETED and event.subscriber_id:
            subscriber = await self.subscriber_repo.get_for_update(event.subscriber_id)
        elif event.customer_id:
            subscriber = await self.subscriber_repo.get_by_customer_id(
                event.provider, event.customer_id, for_update=True
            )
        if subscriber is None:
            raise UnmappedCustomer(
                event.provider.value, event.customer_id or event.subscriber_id
            )
        return subscriber

    @staticmethod
    def _log_context(event: ProviderEvent) -> Dict[str, Any]:
        return {
            "provider": event.provider.value,
            "event_id": event.provider_event_id,
            "event_type": event.provider_event_type,
            "customer_id": event.customer_id,
        }

    @staticmethod
    def _granted_tier(event: ProviderEvent) -> Optional[SubscriptionTier]:
        """Tier the event's plan grants, or None when the plan is unrecognized."""
        plan = resolve_plan(event.plan_slug)
        if plan is not None:
            return plan.tier
        if event.plan_tier:
            try:
                return SubscriptionTier(event.plan_tier)
            except ValueError:
                return None
        return None

    @staticmethod
    def _ledger(
        event: ProviderEvent,
        subscriber: Subscriber,
        event_type: BillingEventType,
        status: BillingEventStatus = BillingEventStatus.SUCCEEDED,
        amount=None,
        **extra: Any,
    ) -> BillingEventCreateModel:
        metadata = {
            "provider_event_type": event.provider_event_type,
            "subscription_id": event.subscription_id,
            "customer_id": event.customer_id,
            "plan": event.plan_slug,
            "upstream_provider": event.upstream_provider,
            "organization_id": event.organization_id,
            "checkout_session_id": event.checkout_session_id,
            **event.metadata,
            **extra,
        }
        return BillingEventCreateModel(
            subscriber_id=subscriber.id,
            type=event_type,
            amount=event.amount if amount is None else amount,
            currency=event.currency.upper(),
            status=status,
            provider=event.provider,
            provider_event_id=event.provider_event_id,
            event_metadata={k: v for k, v in metadata.items() if v is not None},
        )

    def _transition(
        self, message: str, event: ProviderEvent, subscriber: Subscriber
    ) -> None:
        """Log a tier change and record it on the current span."""
        attributes = {**self._log_context(event), "subscriber_id": subscriber.id}
        # Span attributes cannot hold None
        log_span_event(message, {k: v for k, v in attributes.items() if v is not None})

    def _unrecognized_plan(self, event: ProviderEvent, subscriber: Subscriber) -> None:
        logger.error(
            f"Unrecognized plan {event.plan_slug!r}; tier left unchanged",
            extra={**self._log_context(event), "subscriber_id": subscriber.id},
        )

    def _queue_tier_notification(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> None:
        if not event.organization_id:
            return
        customer_id = event.customer_id or subscriber.customer_id_for(event.provider)
        side_effects.append(
            lambda: self.dispatcher.schedule_tier_notification(
                event.organization_id, customer_id or subscriber.id, event.plan_slug
            )
        )

    # Transitions

    async def _on_subscription_created(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> BillingEventCreateModel:
        tier = self._granted_tier(event)
        if tier is None:
            self._unrecognized_plan(event, subscriber)
            return self._ledger(
                event,
                subscriber,
                BillingEventType.SUBSCRIPTION_CREATED,
                unrecognized_plan=True,
            )

        if event.subscription_id and await self.event_repo.has_cancellation(
            event.provider, event.subscription_id
        ):
            # Cancellation was delivered before creation
            logger.warning(
                "Creation for an already cancelled subscription; tier kept",
                extra={**self._log_context(event), "subscriber_id": subscriber.id},
            )
            return self._ledger(
                event,
                subscriber,
                BillingEventType.SUBSCRIPTION_CREATED,
                stale_subscription=True,
            )

        await self.subscriber_repo.update(
            subscriber.id,
            SubscriberTierUpdateModel(
                subscription_tier=tier,
                tier_started_at=event.period_start or _now(),
                tier_expires_at=event.period_end,
                billing_provider=event.provider,
                upstream_provider=event.upstream_provider,
                provider_subscription_id=event.subscription_id,
            ),
        )
        await self.audit_service.log(
            subscriber.id,
            AuditAction.SUBSCRIPTION_ACTIVATED,
            AuditSeverity.MEDIUM,
            {
                "tier": tier.value,
                "provider": event.provider.value,
                "subscription_id": event.subscription_id,
                "event_id": event.provider_event_id,
            },
        )
        self._transition(f"Subscriber upgraded to {tier.value}", event, subscriber)

        self._queue_tier_notification(event, subscriber, side_effects)
        if event.identity_user_id and event.product_id:
            side_effects.append(
                lambda: self.dispatcher.schedule_role_upgrade(
                    event.identity_user_id, event.product_id
                )
            )

        return self._ledger(event, subscriber, BillingEventType.SUBSCRIPTION_CREATED)

    async def _on_subscription_updated(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> None:
        if subscriber.provider_subscription_id is None or (
            event.subscription_id
            and subscriber.provider_subscription_id != event.subscription_id
        ):
            # Covers updates that arrive before creation or after cancellation
            logger.info(
                "Update for a subscription that is not the active one; ignoring",
                extra={**self._log_context(event), "subscriber_id": subscriber.id},
            )
            return None

        if event.period_end is None:
            return None

        await self.subscriber_repo.update(
            subscriber.id,
            SubscriberTierUpdateModel(tier_expires_at=event.period_end),
        )
        logger.info(
            "Subscription period refreshed",
            extra={**self._log_context(event), "subscriber_id": subscriber.id},
        )
        return None

    async def _on_subscription_cancelled(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> BillingEventCreateModel:
        if (
            subscriber.provider_subscription_id
            and event.subscription_id
            and subscriber.provider_subscription_id != event.subscription_id
        ):
            # An older subscription ended after a newer one started
            logger.warning(
                "Cancellation for a subscription that is not the active one; tier kept",
                extra={**self._log_context(event), "subscriber_id": subscriber.id},
            )
            return self._ledger(
                event,
                subscriber,
                BillingEventType.SUBSCRIPTION_CANCELLED,
                amount=0,
                stale_subscription=True,
            )

        await self.subscriber_repo.update(
            subscriber.id,
            SubscriberTierUpdateModel(
                subscription_tier=SubscriptionTier.COMMUNITY,
                tier_expires_at=None,
                provider_subscription_id=None,
            ),
        )
        await self.audit_service.log(
            subscriber.id,
            AuditAction.SUBSCRIPTION_CANCELLED,
            AuditSeverity.MEDIUM,
            {
                "previous_tier": subscriber.subscription_tier.value,
                "provider": event.provider.value,
                "subscription_id": event.subscription_id,
                "event_id": event.provider_event_id,
            },
        )
        self._transition("Subscriber downgraded to community", event, subscriber)
        return self._ledger(
            event, subscriber, BillingEventType.SUBSCRIPTION_CANCELLED, amount=0
        )

    async def _on_subscription_paused(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> None:
        logger.info(
            "Subscription paused",
            extra={**self._log_context(event), "subscriber_id": subscriber.id},
        )
        return None

    async def _on_subscription_resumed(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> None:
        tier = self._granted_tier(event)
        if tier is None:
            self._unrecognized_plan(event, subscriber)
            return None

        update: Dict[str, Any] = {
            "subscription_tier": tier,
            "billing_provider": event.provider,
        }
        if event.period_end is not None:
            update["tier_expires_at"] = event.period_end
        if event.subscription_id:
            update["provider_subscription_id"] = event.subscription_id

        await self.subscriber_repo.update(
            subscriber.id, SubscriberTierUpdateModel(**update)
        )
        logger.info(
            f"Subscription resumed at {tier.value}",
            extra={**self._log_context(event), "subscriber_id": subscriber.id},
        )
        return None

    async def _on_payment_succeeded(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> BillingEventCreateModel:
        return self._ledger(event, subscriber, BillingEventType.PAYMENT_SUCCEEDED)

    async def _on_payment_failed(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> BillingEventCreateModel:
        # Tier is kept; the provider runs its own retry and grace period
        logger.warning(
            "Payment failed",
            extra={**self._log_context(event), "subscriber_id": subscriber.id},
        )
        await self.audit_service.log(
            subscriber.id,
            AuditAction.PAYMENT_FAILED,
            AuditSeverity.HIGH,
            {
                "amount": str(event.amount),
                "currency": event.currency,
                "provider": event.provider.value,
                "event_id": event.provider_event_id,
            },
        )
        return self._ledger(
            event,
            subscriber,
            BillingEventType.PAYMENT_FAILED,
            status=BillingEventStatus.FAILED,
        )

    async def _on_checkout_completed(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> BillingEventCreateModel:
        tier = self._granted_tier(event)
        if tier is None:
            self._unrecognized_plan(event, subscriber)
            return self._ledger(
                event,
                subscriber,
                BillingEventType.SUBSCRIPTION_CREATED,
                unrecognized_plan=True,
            )

        update: Dict[str, Any] = {
            "subscription_tier": tier,
            "tier_started_at": _now(),
            "billing_provider": event.provider,
        }
        if event.subscription_id:
            update["provider_subscription_id"] = event.subscription_id
        if event.upstream_provider:
            update["upstream_provider"] = event.upstream_provider

        await self.subscriber_repo.update(
            subscriber.id, SubscriberTierUpdateModel(**update)
        )
        await self.audit_service.log(
            subscriber.id,
            AuditAction.SUBSCRIPTION_ACTIVATED,
            AuditSeverity.MEDIUM,
            {
                "tier": tier.value,
                "provider": event.provider.value,
                "checkout_session_id": event.checkout_session_id,
                "event_id": event.provider_event_id,
            },
        )
        self._transition(
            f"Checkout completed; subscriber upgraded to {tier.value}", event, subscriber
        )

        self._queue_tier_notification(event, subscriber, side_effects)
        if event.identity_user_id:
            if event.product_id:
                side_effects.append(
                    lambda: self.dispatcher.schedule_role_upgrade(
                        event.identity_user_id, event.product_id
                    )
                )
            elif event.checkout_session_id:
                payment_provider = self.provider_factory(event.provider)
                side_effects.append(
                    lambda: self.dispatcher.schedule_role_upgrade_for_checkout(
                        event.identity_user_id,
                        event.checkout_session_id,
                        payment_provider,
                    )
                )

        return self._ledger(event, subscriber, BillingEventType.SUBSCRIPTION_CREATED)

    async def _on_refund_issued(
        self,
        event: ProviderEvent,
        subscriber: Subscriber,
        side_effects: List[SideEffect],
    ) -> BillingEventCreateModel:
        return self._ledger(event, subscriber, BillingEventType.REFUNDED)
