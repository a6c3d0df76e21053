"""
Domain models for the billing ledger.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

from packages.billing.models.domain.enums import (
    BillingEventStatus,
    BillingEventType,
    BillingProvider,
)


class BillingEvent(BaseModel):
    """One processed provider notification. Never updated or deleted."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    subscriber_id: str
    type: BillingEventType
    amount: Decimal
    currency: str
    status: BillingEventStatus
    provider: BillingProvider
    provider_event_id: str
    event_metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class BillingEventCreateModel(BaseModel):
    subscriber_id: str
    type: BillingEventType
    amount: Decimal = Decimal("0")
    currency: str = "USD"
    status: BillingEventStatus = BillingEventStatus.SUCCEEDED
    provider: BillingProvider
    provider_event_id: str
    event_metadata: Dict[str, Any] = Field(default_factory=dict)
