"""
Database entity for the billing ledger.
"""

from sqlalchemy import Column, String, ForeignKey, Index, JSON, Numeric, UniqueConstraint
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class BillingEventEntity(Base):
    """
    Append-only ledger of processed provider notifications.

    (provider, provider_event_id) is unique: a redelivered webhook cannot
    create a second row even if two deliveries race past the duplicate check.
    """

    __tablename__ = "billing_events"

    id = Column(BigIntegerType, primary_key=True, autoincrement=True)
    subscriber_id = Column(
        String(36),
        ForeignKey("subscribers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type = Column(String(50), nullable=False)
    # Major units (minor-unit amounts are normalized on the way in)
    amount = Column(Numeric(12, 2), nullable=False, server_default="0")
    currency = Column(String(3), nullable=False, server_default="USD")
    status = Column(String(20), nullable=False)

    provider = Column(String(50), nullable=False)
    provider_event_id = Column(String(255), nullable=False)

    event_metadata = Column("metadata", JSON, nullable=False, default=dict)

    created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "provider", "provider_event_id", name="uq_billing_event_provider_event"
        ),
        Index("idx_billing_event_subscriber_created", "subscriber_id", "created_at"),
    )
