"""
Public checkout redirect.

Used by other products to send a signed-in user straight to checkout. No
bearer token: the return URL allow-list is the security boundary here.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from common.providers.rate_limiter.limiter import limiter
from packages.billing.models.schemas.billing import ExternalCheckoutQuery
from packages.billing.services.checkout_service import CheckoutOrchestrator

router = APIRouter()


def get_checkout_orchestrator() -> CheckoutOrchestrator:
    return CheckoutOrchestrator()


@router.get("/checkout", status_code=302, response_class=RedirectResponse)
@limiter.limit("10/minute")
async def external_checkout(
    request: Request,
    query: Annotated[ExternalCheckoutQuery, Query()],
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    """
    Redirect to a provider checkout.

    Query: plan, user_id, return_url, optional product. Rejects return URLs
    outside the allow-list with 400 before anything else happens.
    """
    result = await orchestrator.create_external_checkout(
        user_id=str(query.user_id),
        plan_slug=query.plan,
        return_url=query.return_url,
        product=query.product,
    )
    return RedirectResponse(url=result.checkout_url, status_code=302)
