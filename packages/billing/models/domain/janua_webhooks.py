"""
Domain models for Janua billing webhook payloads.

Janua brokers billing to Conekta (MX) and Polar (international) and forwards
the resulting lifecycle events in a single envelope format.
"""

from decimal import Decimal
from typing import Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class JanuaWebhookType(str, Enum):
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_PAUSED = "subscription.paused"
    SUBSCRIPTION_RESUMED = "subscription.resumed"
    PAYMENT_SUCCEEDED = "payment.succeeded"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REFUNDED = "payment.refunded"


class JanuaMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    userId: Optional[str] = None
    orgId: Optional[str] = None
    product: Optional[str] = None


class JanuaEventData(BaseModel):
    """Event body. Amounts are already in major units."""

    customer_id: str
    subscription_id: Optional[str] = None
    plan_id: Optional[str] = None
    provider: Optional[str] = None
    status: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    metadata: JanuaMetadata = Field(default_factory=JanuaMetadata)


class JanuaWebhookPayload(BaseModel):
    id: str
    type: str
    data: JanuaEventData
    timestamp: Optional[str] = None
