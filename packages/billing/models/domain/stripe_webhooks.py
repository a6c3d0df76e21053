"""
Domain models for Stripe webhook payloads.

Only the fields the billing state machine reads are declared; Stripe sends
many more and they are ignored.
"""

from typing import Optional, Any, List
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class StripeWebhookType(str, Enum):
    """Stripe webhook event types we act on."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    CHARGE_REFUNDED = "charge.refunded"


class StripeMetadata(BaseModel):
    """Metadata we attach to Stripe customers, sessions and subscriptions."""

    model_config = ConfigDict(extra="allow")

    userId: Optional[str] = None
    janua_user_id: Optional[str] = None
    plan: Optional[str] = None
    orgId: Optional[str] = None
    product: Optional[str] = None
    source: Optional[str] = None


class StripePrice(BaseModel):
    id: str
    product: Optional[Any] = None  # product id, or the expanded product object
    unit_amount: Optional[int] = None

    @property
    def product_id(self) -> Optional[str]:
        if isinstance(self.product, dict):
            return self.product.get("id")
        return self.product


class StripeSubscriptionItem(BaseModel):
    price: StripePrice


class StripeSubscriptionItems(BaseModel):
    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscriptionData(BaseModel):
    """Stripe subscription object."""

    id: str
    customer: str
    status: str
    currency: Optional[str] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    items: StripeSubscriptionItems = Field(default_factory=StripeSubscriptionItems)
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)

    @property
    def first_price(self) -> Optional[StripePrice]:
        return self.items.data[0].price if self.items.data else None


class StripeInvoiceData(BaseModel):
    """Stripe invoice object."""

    id: str
    customer: str
    subscription: Optional[str] = None
    amount_due: int = 0
    amount_paid: int = 0
    currency: Optional[str] = None


class StripeChargeData(BaseModel):
    """Stripe charge object (refunds)."""

    id: str
    customer: Optional[str] = None
    amount_refunded: int = 0
    currency: Optional[str] = None


class StripeCheckoutSessionData(BaseModel):
    """Stripe checkout session object."""

    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)


class StripeEventData(BaseModel):
    """Stripe event data wrapper."""

    object: dict[str, Any]


class StripeWebhookPayload(BaseModel):
    """Complete Stripe webhook payload. `type` stays a string so unknown
    event types parse and are acknowledged as unhandled."""

    id: str
    type: str
    data: StripeEventData
    created: int
    livemode: bool = False
