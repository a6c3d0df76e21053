"""
Billing API routes.

Protected endpoints for upgrades, the billing portal, usage and history. The
subscriber is always the bearer token's subject.
"""

from fastapi import APIRouter, Depends, Query

from packages.auth.dependencies import get_current_subscriber_id
from packages.billing.models.domain.routing import ReturnUrls
from packages.billing.models.schemas.billing import (
    BillingEventResponse,
    BillingHistoryResponse,
    CancelSubscriptionResponse,
    CheckoutResponse,
    FeatureUsageResponse,
    PortalRequest,
    PortalResponse,
    SubscriptionStatusResponse,
    UpgradeRequest,
    UsageResponse,
)
from packages.billing.services.checkout_service import CheckoutOrchestrator
from packages.billing.services.subscription_service import SubscriptionService
from packages.billing.services.usage_meter import UsageMeter

router = APIRouter()


def get_checkout_orchestrator() -> CheckoutOrchestrator:
    return CheckoutOrchestrator()


def get_subscription_service() -> SubscriptionService:
    return SubscriptionService()


def get_usage_meter() -> UsageMeter:
    return UsageMeter()


# ============================================================================
# Checkout
# ============================================================================


@router.post("/upgrade", response_model=CheckoutResponse)
async def upgrade(
    request: UpgradeRequest,
    subscriber_id: str = Depends(get_current_subscriber_id),
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    """
    Start a checkout for a higher tier.

    Routed to the provider that serves the subscriber's country. Returns the
    provider checkout URL unchanged.
    """
    result = await orchestrator.create_checkout(
        subscriber_id=subscriber_id,
        plan_slug=request.plan,
        product=request.product,
        country_code=request.country_code,
        return_urls=ReturnUrls(
            success_url=request.success_url, cancel_url=request.cancel_url
        ),
        organization_id=request.org_id,
    )
    return CheckoutResponse(**result.model_dump())


@router.post("/portal", response_model=PortalResponse)
async def create_portal_session(
    request: PortalRequest,
    subscriber_id: str = Depends(get_current_subscriber_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Billing portal of the provider that bills the subscriber."""
    portal_url = await service.create_portal_session(
        subscriber_id, return_url=request.return_url
    )
    return PortalResponse(portal_url=portal_url)


# ============================================================================
# Subscription
# ============================================================================


@router.get("/status", response_model=SubscriptionStatusResponse)
async def get_subscription_status(
    subscriber_id: str = Depends(get_current_subscriber_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    status = await service.get_status(subscriber_id)
    return SubscriptionStatusResponse(**status.model_dump(exclude={"subscriber_id"}))


@router.post("/cancel", response_model=CancelSubscriptionResponse)
async def cancel_subscription(
    subscriber_id: str = Depends(get_current_subscriber_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """
    Request cancellation at period end.

    The tier is kept until the provider confirms the cancellation by webhook.
    """
    requested = await service.cancel(subscriber_id)
    return CancelSubscriptionResponse(**requested.model_dump())


@router.get("/history", response_model=BillingHistoryResponse)
async def get_billing_history(
    limit: int = Query(default=20, ge=1, le=100),
    subscriber_id: str = Depends(get_current_subscriber_id),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Ledger entries, newest first."""
    events = await service.get_history(subscriber_id, limit=limit)
    return BillingHistoryResponse(
        events=[
            BillingEventResponse(
                id=event.id,
                type=event.type,
                amount=event.amount,
                currency=event.currency,
                status=event.status,
                provider=event.provider,
                created_at=event.created_at,
                metadata=event.event_metadata,
            )
            for event in events
        ]
    )


# ============================================================================
# Usage
# ============================================================================


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    subscriber_id: str = Depends(get_current_subscriber_id),
    meter: UsageMeter = Depends(get_usage_meter),
):
    """Today's usage against the tier's daily caps."""
    summary = await meter.summary(subscriber_id)
    return UsageResponse(
        tier=summary.tier,
        usage_date=summary.usage_date,
        usage={
            feature: FeatureUsageResponse(used=usage.used, limit=usage.limit)
            for feature, usage in summary.features.items()
        },
    )
