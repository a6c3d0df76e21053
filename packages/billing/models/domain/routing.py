"""
Result types for provider routing and checkout orchestration.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict

from packages.billing.models.domain.enums import BillingProvider, UpstreamProvider


class ProviderRoute(BaseModel):
    """Where a subscriber's billing goes.

    `upstream` is only set for the federated broker, which forwards to its own
    processors.
    """

    model_config = ConfigDict(frozen=True)

    provider: BillingProvider
    upstream: Optional[UpstreamProvider] = None

    @property
    def label(self) -> str:
        """Name reported to callers: the processor that actually charges."""
        if self.upstream is not None:
            return self.upstream.value
        return self.provider.value


class CheckoutSession(BaseModel):
    """Provider-issued checkout session. Never persisted locally."""

    session_id: str
    checkout_url: str


class CheckoutResult(BaseModel):
    checkout_url: str
    provider: str
    session_id: str


class ReturnUrls(BaseModel):
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None
