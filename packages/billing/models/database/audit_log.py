"""
Database entity for billing audit entries.
"""

from sqlalchemy import Column, String, ForeignKey, Index, JSON
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime


class AuditLogEntity(Base):
    __tablename__ = "audit_logs"

    id = Column(BigIntegerType, primary_key=True, autoincrement=True)
    subscriber_id = Column(
        String(36),
        ForeignKey("subscribers.id", ondelete="CASCADE"),
        nullable=False,
    )
    action = Column(String(64), nullable=False)
    severity = Column(String(16), nullable=False)
    audit_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime, server_default=func.now(), nullable=False)

    __table_args__ = (Index("idx_audit_subscriber_action", "subscriber_id", "action"),)
