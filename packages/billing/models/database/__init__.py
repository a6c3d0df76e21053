"""Database models for billing."""

from packages.billing.models.database.billing_event import BillingEventEntity
from packages.billing.models.database.usage import UsageCounterEntity
from packages.billing.models.database.audit_log import AuditLogEntity

__all__ = [
    "BillingEventEntity",
    "UsageCounterEntity",
    "AuditLogEntity",
]
