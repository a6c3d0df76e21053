"""Billing repositories."""

from packages.billing.repositories.billing_event_repository import (
    BillingEventRepository,
)
from packages.billing.repositories.usage_repository import UsageCounterRepository
from packages.billing.repositories.audit_log_repository import AuditLogRepository

__all__ = [
    "BillingEventRepository",
    "UsageCounterRepository",
    "AuditLogRepository",
]
