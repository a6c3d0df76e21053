"""
Repository for daily usage counters.
"""

from datetime import date
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from common.repositories.base import BaseRepository
from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.database.usage import UsageCounterEntity
from packages.billing.models.domain.enums import MeteredFeature
from packages.billing.models.domain.usage import UsageCounter

_COUNTER_KEY = ["subscriber_id", "feature", "usage_date"]


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT supporting ON CONFLICT ... DO UPDATE."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Atomic counter upsert not supported on {dialect}")


class UsageCounterRepository(BaseRepository[UsageCounterEntity, UsageCounter]):
    """Counters are only ever changed by single-statement upserts."""

    def __init__(self):
        super().__init__(UsageCounterEntity, UsageCounter)

    @trace_span
    async def get_count(
        self, subscriber_id: str, feature: MeteredFeature, usage_date: date
    ) -> int:
        """Current count, 0 when no row exists yet."""
        async with self._get_session() as session:
            result = await session.execute(
                select(UsageCounterEntity.count).where(
                    UsageCounterEntity.subscriber_id == subscriber_id,
                    UsageCounterEntity.feature == feature.value,
                    UsageCounterEntity.usage_date == usage_date,
                )
            )
            return result.scalar_one_or_none() or 0

    @trace_span
    async def get_counts_for_day(
        self, subscriber_id: str, usage_date: date
    ) -> Dict[MeteredFeature, int]:
        async with self._get_session() as session:
            result = await session.execute(
                select(UsageCounterEntity.feature, UsageCounterEntity.count).where(
                    UsageCounterEntity.subscriber_id == subscriber_id,
                    UsageCounterEntity.usage_date == usage_date,
                )
            )
            return {MeteredFeature(feature): count for feature, count in result.all()}

    @trace_span
    async def increment(
        self,
        subscriber_id: str,
        feature: MeteredFeature,
        usage_date: date,
        amount: int = 1,
    ) -> int:
        """
        Atomically add `amount` to the counter, creating it if absent.

        Returns the post-increment count.
        """
        async with self._get_session() as session:
            insert = _insert_for(session)
            stmt = insert(UsageCounterEntity).values(
                subscriber_id=subscriber_id,
                feature=feature.value,
                usage_date=usage_date,
                count=amount,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=_COUNTER_KEY,
                set_={"count": UsageCounterEntity.__table__.c.count + amount},
            ).returning(UsageCounterEntity.count)

            result = await session.execute(stmt)
            return result.scalar_one()

    @trace_span
    async def increment_below(
        self,
        subscriber_id: str,
        feature: MeteredFeature,
        usage_date: date,
        cap: int,
    ) -> Optional[int]:
        """
        Increment only while the stored count is below `cap`.

        One statement: the conditional DO UPDATE either bumps the row and
        returns the new count, or matches nothing and returns no row.
        Returns None when the cap was already reached.
        """
        if cap <= 0:
            return None

        table = UsageCounterEntity.__table__
        async with self._get_session() as session:
            insert = _insert_for(session)
            stmt = insert(UsageCounterEntity).values(
                subscriber_id=subscriber_id,
                feature=feature.value,
                usage_date=usage_date,
                count=1,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=_COUNTER_KEY,
                set_={"count": table.c.count + 1},
                where=table.c.count < cap,
            ).returning(UsageCounterEntity.count)

            result = await session.execute(stmt)
            return result.scalar_one_or_none()
