from typing import Optional
from sqlalchemy import select, update

from common.repositories.base import BaseRepository
from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.domain.enums import BillingProvider
from packages.subscribers.models.database.subscriber import SubscriberEntity
from packages.subscribers.models.domain.subscriber import Subscriber

_CUSTOMER_ID_COLUMNS = {
    BillingProvider.STRIPE: SubscriberEntity.stripe_customer_id,
    BillingProvider.JANUA: SubscriberEntity.janua_customer_id,
}


class SubscriberRepository(BaseRepository[SubscriberEntity, Subscriber]):
    def __init__(self):
        super().__init__(SubscriberEntity, Subscriber)

    @trace_span
    async def get_for_update(self, subscriber_id: str) -> Optional[Subscriber]:
        """
        Get a subscriber holding a row lock until the enclosing transaction ends.

        Must be called inside transaction(); serializes concurrent tier writes
        for the same subscriber.
        """
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriberEntity)
                .where(SubscriberEntity.id == subscriber_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_by_customer_id(
        self, provider: BillingProvider, customer_id: str, for_update: bool = False
    ) -> Optional[Subscriber]:
        """Resolve a provider customer id to its subscriber."""
        query = select(SubscriberEntity).where(
            _CUSTOMER_ID_COLUMNS[provider] == customer_id
        )
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)

        async with self._get_session() as session:
            result = await session.execute(query)
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def assign_customer_id(
        self, subscriber_id: str, provider: BillingProvider, customer_id: str
    ) -> bool:
        """
        Store a provider customer id if the slot is still empty.

        Returns False when another writer filled the slot first; the stored
        value is then authoritative.
        """
        column = _CUSTOMER_ID_COLUMNS[provider]
        async with self._get_session() as session:
            result = await session.execute(
                update(SubscriberEntity)
                .where(SubscriberEntity.id == subscriber_id, column.is_(None))
                .values({column.key: customer_id})
                .execution_options(synchronize_session=False)
            )
            await session.flush()
            return result.rowcount > 0
