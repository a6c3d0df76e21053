"""
Plans API routes.

Public endpoints for pricing pages: localized plans and per-tier limits.
"""

from typing import Optional

from fastapi import APIRouter, Query

from packages.billing.models.domain.enums import SubscriptionTier
from packages.billing.models.schemas.billing import (
    PlanResponse,
    PlansResponse,
    TierLimitsResponse,
)
from packages.billing.services.plans_service import PlansService

router = APIRouter()


@router.get("", response_model=PlansResponse)
async def get_plans(
    country_code: Optional[str] = Query(default=None, max_length=2),
):
    """
    Get all subscription plans.

    Priced in MXN for Mexico and USD everywhere else.
    """
    plans = PlansService().get_plans(country_code)
    return PlansResponse(
        plans=[PlanResponse(**plan.model_dump()) for plan in plans]
    )


@router.get("/{tier}/limits", response_model=TierLimitsResponse)
async def get_tier_limits(tier: SubscriptionTier):
    """Daily caps (-1 = unlimited) and entitlements of one tier."""
    service = PlansService()
    limits = service.get_tier_limits(tier)
    return TierLimitsResponse(
        tier=tier,
        daily_caps=service.get_daily_caps(tier),
        **limits.model_dump(),
    )
