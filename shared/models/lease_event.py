from sqlalchemy import (
    Column, String, Numeric, DateTime, Index, JSON, Integer, ForeignKey
)
from sqlalchemy.dialects.postgresql import UUID, BIGINT
from datetime import datetime

from shared.database.base import Base


class LeaseEventType:
    """Lease audit event types."""
    LEASE_CREATED = "LEASE_CREATED"
    LEASE_ACTIVATED = "LEASE_ACTIVATED"
    LEASE_EXTENDED = "LEASE_EXTENDED"
    LEASE_TERMINATED = "LEASE_TERMINATED"
    LEASE_EXPIRED = "LEASE_EXPIRED"
    LEASE_SUSPENDED = "LEASE_SUSPENDED"
    LEASE_RESUMED = "LEASE_RESUMED"
    LEASE_DELETED = "LEASE_DELETED"
    ESIGNATURE_UPDATED = "ESIGNATURE_UPDATED"
    PAYMENT_RECORDED = "PAYMENT_RECORDED"


class LeaseEvent(Base):
    """Append-only audit trail of lifecycle and payment events per lease."""

    __tablename__ = "lease_events"

    # Primary Key (auto-incrementing for ordering)
    # Use Integer for SQLite compatibility, BIGINT for PostgreSQL
    id = Column(
        Integer().with_variant(BIGINT(), "postgresql"),
        primary_key=True,
        autoincrement=True,
    )

    # Foreign Key
    lease_id = Column(
        UUID(as_uuid=True),
        ForeignKey("lease_agreements.id"),
        nullable=False,
        index=True,
    )

    # Event Information
    event_type = Column(
        String(50),
        nullable=False,
        index=True,
    )

    event_payload = Column(
        JSON,
        nullable=False,
    )

    # Amount (if applicable to this event)
    amount = Column(
        Numeric(14, 2),
        nullable=True,
    )

    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    # Indexes
    __table_args__ = (
        Index("idx_lease_events", "lease_id", "created_at"),
        Index("idx_event_type_created", "event_type", "created_at"),
    )

    def __repr__(self):
        return f"<LeaseEvent(id={self.id}, lease_id={self.lease_id}, event_type={self.event_type})>"
