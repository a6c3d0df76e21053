"""
Database entity for subscribers.
"""

from sqlalchemy import Column, String, Index
from sqlalchemy.sql import func

from common.db.base import Base, UTCDateTime


class SubscriberEntity(Base):
    """
    The billable identity.

    Holds one customer id slot per provider the subscriber has ever used; slots
    are never cleared. provider_subscription_id is the single active
    subscription, so at most one can exist at a time.
    """

    __tablename__ = "subscribers"

    # Identity-system user id (UUID string)
    id = Column(String(36), primary_key=True)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    country_code = Column(String(2), nullable=True)

    # Tier
    subscription_tier = Column(
        String(50), nullable=False, server_default="community", index=True
    )
    tier_started_at = Column(UTCDateTime, nullable=True)
    # NULL = non-expiring
    tier_expires_at = Column(UTCDateTime, nullable=True)

    # Per-provider customer ids
    stripe_customer_id = Column(String(255), nullable=True, unique=True)
    janua_customer_id = Column(String(255), nullable=True, unique=True)

    # Active provider and subscription
    billing_provider = Column(String(50), nullable=True)
    # Processor the federated broker charges through (conekta / polar)
    upstream_provider = Column(String(50), nullable=True)
    provider_subscription_id = Column(String(255), nullable=True, unique=True)

    created_at = Column(UTCDateTime, server_default=func.now())
    updated_at = Column(UTCDateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("idx_subscriber_tier_expires", "subscription_tier", "tier_expires_at"),)
