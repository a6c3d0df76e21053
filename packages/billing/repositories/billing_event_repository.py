"""
Repository for the billing ledger.

Rows are inserted once and never updated or deleted, so this exposes no
update path.
"""

from typing import List

from sqlalchemy import select, exists

from common.repositories.base import BaseRepository
from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.database.billing_event import BillingEventEntity
from packages.billing.models.domain.billing_event import (
    BillingEvent,
    BillingEventCreateModel,
)
from packages.billing.models.domain.enums import BillingEventType, BillingProvider


class BillingEventRepository(BaseRepository[BillingEventEntity, BillingEvent]):
    def __init__(self):
        super().__init__(BillingEventEntity, BillingEvent)

    @trace_span
    async def exists(self, provider: BillingProvider, provider_event_id: str) -> bool:
        """Check whether this provider delivery was already processed."""
        async with self._get_session() as session:
            result = await session.execute(
                select(
                    exists().where(
                        BillingEventEntity.provider == provider.value,
                        BillingEventEntity.provider_event_id == provider_event_id,
                    )
                )
            )
            return bool(result.scalar())

    @trace_span
    async def record(self, create_model: BillingEventCreateModel) -> BillingEvent:
        """
        Append a ledger row.

        Raises sqlalchemy.exc.IntegrityError when (provider, provider_event_id)
        already exists.
        """
        return await self.create(create_model)

    @trace_span
    async def list_for_subscriber(
        self, subscriber_id: str, limit: int = 20
    ) -> List[BillingEvent]:
        """Newest first."""
        async with self._get_session() as session:
            result = await session.execute(
                select(BillingEventEntity)
                .where(BillingEventEntity.subscriber_id == subscriber_id)
                .order_by(
                    BillingEventEntity.created_at.desc(), BillingEventEntity.id.desc()
                )
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def has_cancellation(
        self, provider: BillingProvider, subscription_id: str
    ) -> bool:
        """Check whether the ledger already holds a cancellation for this subscription."""
        async with self._get_session() as session:
            result = await session.execute(
                select(
                    exists().where(
                        BillingEventEntity.provider == provider.value,
                        BillingEventEntity.type
                        == BillingEventType.SUBSCRIPTION_CANCELLED.value,
                        BillingEventEntity.event_metadata["subscription_id"].as_string()
                        == subscription_id,
                    )
                )
            )
            return bool(result.scalar())
