from typing import List

from sqlalchemy import select

from common.repositories.base import BaseRepository
from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.database.audit_log import AuditLogEntity
from packages.billing.models.domain.audit import AuditLog


class AuditLogRepository(BaseRepository[AuditLogEntity, AuditLog]):
    def __init__(self):
        super().__init__(AuditLogEntity, AuditLog)

    @trace_span
    async def list_for_subscriber(self, subscriber_id: str) -> List[AuditLog]:
        async with self._get_session() as session:
            result = await session.execute(
                select(AuditLogEntity)
                .where(AuditLogEntity.subscriber_id == subscriber_id)
                .order_by(AuditLogEntity.id)
            )
            return self._entities_to_domain(result.scalars().all())
