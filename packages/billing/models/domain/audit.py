"""
Domain models for billing audit entries.
"""

from datetime import datetime
from typing import Any, Dict
from pydantic import BaseModel, ConfigDict, Field

from packages.billing.models.domain.enums import AuditAction, AuditSeverity


class AuditLog(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    subscriber_id: str
    action: AuditAction
    severity: AuditSeverity
    audit_metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class AuditLogCreateModel(BaseModel):
    subscriber_id: str
    action: AuditAction
    severity: AuditSeverity = AuditSeverity.MEDIUM
    audit_metadata: Dict[str, Any] = Field(default_factory=dict)
