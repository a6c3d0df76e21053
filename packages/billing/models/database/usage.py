"""
Database entity for daily usage counters.
"""

from sqlalchemy import Column, String, Date, ForeignKey, Integer, UniqueConstraint

from common.db.base import Base, BigIntegerType


class UsageCounterEntity(Base):
    """
    Per subscriber, per feature, per UTC day count.

    A new day is a new row, so counters reset without ever being decremented.
    """

    __tablename__ = "usage_counters"

    id = Column(BigIntegerType, primary_key=True, autoincrement=True)
    subscriber_id = Column(
        String(36),
        ForeignKey("subscribers.id", ondelete="CASCADE"),
        nullable=False,
    )
    feature = Column(String(50), nullable=False)
    usage_date = Column(Date, nullable=False)
    count = Column(Integer, nullable=False, server_default="0")

    __table_args__ = (
        UniqueConstraint(
            "subscriber_id", "feature", "usage_date", name="uq_usage_counter_key"
        ),
    )
