from typing import Any, Dict, List, Optional

from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.billing.models.domain.audit import AuditLog, AuditLogCreateModel
from packages.billing.models.domain.enums import AuditAction, AuditSeverity
from packages.billing.repositories.audit_log_repository import AuditLogRepository

logger = get_logger(__name__)


class AuditService:
    """Billing audit trail. Entries join the caller's transaction when there is one."""

    def __init__(self, audit_repo: Optional[AuditLogRepository] = None):
        self.audit_repo = audit_repo or AuditLogRepository()

    @trace_span
    async def log(
        self,
        subscriber_id: str,
        action: AuditAction,
        severity: AuditSeverity = AuditSeverity.MEDIUM,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        # Drop None values so the JSON column stays compact
        clean = {k: v for k, v in (metadata or {}).items() if v is not None}
        entry = await self.audit_repo.create(
            AuditLogCreateModel(
                subscriber_id=subscriber_id,
                action=action,
                severity=severity,
                audit_metadata=clean,
            )
        )
        logger.info(
            f"Audit: {action.value}",
            extra={"subscriber_id": subscriber_id, "severity": severity.value},
        )
        return entry

    @trace_span
    async def list_for_subscriber(self, subscriber_id: str) -> List[AuditLog]:
        return await self.audit_repo.list_for_subscriber(subscriber_id)
