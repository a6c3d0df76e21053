from fastapi import APIRouter

from api.v1.routes import (
    health,
)
from packages.billing.routes import billing, checkout, plans, webhooks

api_router = APIRouter()

# Health check (no auth required)
api_router.include_router(health.router, prefix="/health", tags=["health"])

# Webhooks (no auth - signature verified internally)
api_router.include_router(webhooks.router, prefix="/billing", tags=["webhooks"])

# Plans (no auth - public pricing info)
api_router.include_router(plans.router, prefix="/billing/plans", tags=["billing"])

# Public checkout redirect (no auth - return_url allow-list, rate limited)
api_router.include_router(checkout.router, prefix="/billing", tags=["billing"])

# Billing routes (auth enforced per endpoint via get_current_subscriber_id)
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
