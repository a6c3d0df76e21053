"""
Common webhook intake: verify, parse, translate, process, answer.

Providers retry on non-2xx or `received: false`, so only transient failures
are reported that way. Everything permanent is acknowledged and logged.
"""

import asyncio
from typing import Any, Callable, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError

from common.core.otel_axiom_exporter import get_logger
from packages.billing.exceptions import InvalidSignature, WebhookSecretMissing
from packages.billing.models.domain.enums import BillingProvider, WebhookOutcome
from packages.billing.models.domain.provider_event import ProviderEvent
from packages.billing.services.signature_verifier import SignatureVerifier
from packages.billing.services.webhook_processor import WebhookProcessor

logger = get_logger(__name__)

WebhookResponse = Tuple[int, Dict[str, Any]]


def _ack(**extra: Any) -> WebhookResponse:
    return 200, {"received": True, **extra}


def _retry(error: str) -> WebhookResponse:
    return 503, {"received": False, "error": error}


async def process_delivery(
    provider: BillingProvider,
    body: bytes,
    signature: Optional[str],
    payload_model: Type[BaseModel],
    translate: Callable[[Any], Optional[ProviderEvent]],
    verifier: Optional[SignatureVerifier] = None,
    processor: Optional[WebhookProcessor] = None,
) -> WebhookResponse:
    """
    Run one delivery end to end and return (status code, body).

    Never raises.
    """
    verifier = verifier or SignatureVerifier()
    log_context: Dict[str, Any] = {"provider": provider.value}

    try:
        verifier.verify(provider, body, signature)
    except WebhookSecretMissing as e:
        logger.error(e.detail, extra=log_context)
        return _retry("webhook secret not configured")
    except InvalidSignature as e:
        logger.warning(
            f"Rejected {provider.value} webhook: {e.context.get('reason')}",
            extra=log_context,
        )
        return _ack(error="invalid signature")

    try:
        payload = payload_model.model_validate_json(body)
        event = translate(payload)
    except (ValidationError, ValueError) as e:
        logger.error(f"Malformed {provider.value} webhook payload: {e}", extra=log_context)
        return _ack(error="invalid payload")

    if event is None:
        logger.info(
            f"Unhandled {provider.value} webhook type: {getattr(payload, 'type', None)}",
            extra={**log_context, "event_id": getattr(payload, "id", None)},
        )
        return _ack(status=WebhookOutcome.IGNORED.value)

    log_context.update(
        {"event_id": event.provider_event_id, "event_type": event.provider_event_type}
    )
    logger.info(f"Received {provider.value} webhook", extra=log_context)

    processor = processor or WebhookProcessor()
    try:
        outcome = await processor.process(event)
    except asyncio.TimeoutError:
        logger.error("Webhook processing deadline exceeded", extra=log_context)
        return _retry("processing deadline exceeded")
    except SQLAlchemyError as e:
        logger.error(f"Webhook storage failure: {e}", extra=log_context, exc_info=True)
        return _retry("storage unavailable")
    except Exception as e:
        logger.error(
            f"Webhook processing failed: {e!r}", extra=log_context, exc_info=True
        )
        return _retry("processing failed")

    return _ack(status=outcome.value)
