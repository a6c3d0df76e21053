"""
Webhook endpoints for billing events.

Public endpoints (no auth required); each provider's signature is verified
before the payload is parsed.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from packages.billing.webhooks.janua_webhook import handle_janua_webhook
from packages.billing.webhooks.stripe_webhook import handle_stripe_webhook

router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(request: Request) -> JSONResponse:
    """
    Receive webhook events from Stripe.

    200 acknowledges the delivery; 503 with `received: false` asks Stripe to
    retry.
    """
    status_code, body = await handle_stripe_webhook(request)
    return JSONResponse(status_code=status_code, content=body)


@router.post("/webhook/janua")
async def janua_webhook(request: Request) -> JSONResponse:
    """Receive billing lifecycle events forwarded by Janua."""
    status_code, body = await handle_janua_webhook(request)
    return JSONResponse(status_code=status_code, content=body)
