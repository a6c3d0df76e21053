"""
Webhook signature verification.

The only gate before a webhook payload is parsed. Every comparison is
constant-time.
"""

import hashlib
import hmac
from typing import Optional

import stripe

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from packages.billing.exceptions import InvalidSignature, WebhookSecretMissing
from packages.billing.models.domain.enums import BillingProvider

logger = get_logger(__name__)


class SignatureVerifier:
    def __init__(
        self,
        stripe_secret: Optional[str] = None,
        janua_secret: Optional[str] = None,
        stripe_tolerance_seconds: Optional[int] = None,
    ):
        self.stripe_secret = (
            settings.stripe_webhook_secret if stripe_secret is None else stripe_secret
        )
        self.janua_secret = (
            settings.janua_webhook_secret if janua_secret is None else janua_secret
        )
        self.stripe_tolerance_seconds = (
            stripe_tolerance_seconds or settings.stripe_webhook_tolerance_seconds
        )

    def verify(
        self, provider: BillingProvider, payload: bytes, signature: Optional[str]
    ) -> None:
        """
        Raise unless `signature` authenticates `payload` for `provider`.

        Raises:
            WebhookSecretMissing: no secret configured (transient, provider retries)
            InvalidSignature: header missing, malformed, stale or wrong
        """
        if provider == BillingProvider.STRIPE:
            self._verify_stripe(payload, signature)
        else:
            self._verify_janua(payload, signature)

    def _verify_stripe(self, payload: bytes, signature: Optional[str]) -> None:
        """Stripe scheme: `t=<ts>,v1=<hex hmac of "<ts>.<body>">`, with a replay window."""
        if not self.stripe_secret:
            raise WebhookSecretMissing(BillingProvider.STRIPE.value)
        if not signature:
            raise InvalidSignature(BillingProvider.STRIPE.value, "missing stripe-signature header")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self.stripe_secret,
                tolerance=self.stripe_tolerance_seconds,
            )
        except UnicodeDecodeError:
            raise InvalidSignature(BillingProvider.STRIPE.value, "payload is not utf-8")
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature(BillingProvider.STRIPE.value, str(e))

    def _verify_janua(self, payload: bytes, signature: Optional[str]) -> None:
        """Janua scheme: hex HMAC-SHA256 of the raw body."""
        if not self.janua_secret:
            raise WebhookSecretMissing(BillingProvider.JANUA.value)
        if not signature:
            raise InvalidSignature(BillingProvider.JANUA.value, "missing x-janua-signature header")

        expected = hmac.new(
            self.janua_secret.encode("utf-8"), payload, hashlib.sha256
        ).hexdigest()
        provided = signature.strip().lower().encode("utf-8")
        if not hmac.compare_digest(expected.encode("ascii"), provided):
            raise InvalidSignature(BillingProvider.JANUA.value)
