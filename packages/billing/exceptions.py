"""
Billing errors.

Each error carries an error_code for the frontend and the HTTP status the API
layer answers with. Webhook paths never let these reach the HTTP layer.
"""

from typing import Any, Dict, Optional

from common.core.exceptions import AppException


class BillingError(AppException):
    def __init__(
        self,
        detail: str,
        error_code: str = "BILLING_ERROR",
        status_code: int = 400,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.detail = detail
        self.error_code = error_code
        self.status_code = status_code
        self.context = context or {}
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "detail": self.detail,
            "error_code": self.error_code,
            "context": self.context,
        }


class ProviderUnavailable(BillingError):
    """
    A payment provider call failed or timed out. Safe for the caller to retry.

    HTTP Status: 503 Service Unavailable
    """

    def __init__(self, provider: str, reason: str):
        super().__init__(
            detail=f"Payment provider {provider} is unavailable",
            error_code="BILLING_PROVIDER_UNAVAILABLE",
            status_code=503,
            context={"provider": provider, "reason": reason},
        )
        self.provider = provider
        self.reason = reason


class ProviderNotConfigured(BillingError):
    """HTTP Status: 503 Service Unavailable"""

    def __init__(self, provider: str, missing: str):
        super().__init__(
            detail=f"Payment provider {provider} is not configured: {missing}",
            error_code="BILLING_PROVIDER_NOT_CONFIGURED",
            status_code=503,
            context={"provider": provider, "missing": missing},
        )


class AlreadyAtOrAboveTier(BillingError):
    """
    Checkout requested for a tier the subscriber already has or exceeds.

    HTTP Status: 409 Conflict
    """

    def __init__(self, current_tier: str, requested_tier: str):
        super().__init__(
            detail=f"Subscriber is already on the {current_tier} tier",
            error_code="BILLING_ALREADY_AT_OR_ABOVE_TIER",
            status_code=409,
            context={"current_tier": current_tier, "requested_tier": requested_tier},
        )


class UntrustedRedirect(BillingError):
    """HTTP Status: 400 Bad Request"""

    def __init__(self, return_url: str):
        super().__init__(
            detail="return_url host is not allowed",
            error_code="BILLING_UNTRUSTED_REDIRECT",
            status_code=400,
            context={"return_url": return_url},
        )


class InvalidSignature(BillingError):
    """Webhook signature did not verify. Never becomes valid on retry."""

    def __init__(self, provider: str, reason: str = "signature mismatch"):
        super().__init__(
            detail=f"Invalid {provider} webhook signature",
            error_code="BILLING_INVALID_SIGNATURE",
            status_code=400,
            context={"provider": provider, "reason": reason},
        )


class WebhookSecretMissing(BillingError):
    """No signing secret configured; treated as transient so the provider retries."""

    def __init__(self, provider: str):
        super().__init__(
            detail=f"{provider} webhook secret is not configured",
            error_code="BILLING_WEBHOOK_SECRET_MISSING",
            status_code=503,
            context={"provider": provider},
        )


class UnmappedCustomer(BillingError):
    """No subscriber owns this provider customer id. Logged and dropped."""

    def __init__(self, provider: str, customer_id: Optional[str]):
        super().__init__(
            detail=f"No subscriber for {provider} customer {customer_id}",
            error_code="BILLING_UNMAPPED_CUSTOMER",
            status_code=404,
            context={"provider": provider, "customer_id": customer_id},
        )


class SubscriberNotFound(BillingError):
    """HTTP Status: 404 Not Found"""

    def __init__(self, subscriber_id: str):
        super().__init__(
            detail="Subscriber not found",
            error_code="BILLING_SUBSCRIBER_NOT_FOUND",
            status_code=404,
            context={"subscriber_id": subscriber_id},
        )


class NoBillingAccount(BillingError):
    """Subscriber has no customer id with the provider being asked for.

    HTTP Status: 404 Not Found
    """

    def __init__(self, subscriber_id: str, provider: str):
        super().__init__(
            detail=f"No {provider} billing account for this subscriber",
            error_code="BILLING_NO_CUSTOMER",
            status_code=404,
            context={"subscriber_id": subscriber_id, "provider": provider},
        )


class NoActiveSubscription(BillingError):
    """HTTP Status: 404 Not Found"""

    def __init__(self, subscriber_id: str):
        super().__init__(
            detail="No active subscription to cancel",
            error_code="BILLING_NO_ACTIVE_SUBSCRIPTION",
            status_code=404,
            context={"subscriber_id": subscriber_id},
        )


class UnknownPlan(BillingError):
    """HTTP Status: 400 Bad Request"""

    def __init__(self, plan: Optional[str]):
        super().__init__(
            detail=f"Unknown plan: {plan}",
            error_code="BILLING_UNKNOWN_PLAN",
            status_code=400,
            context={"plan": plan},
        )
