from sqlalchemy import (
    Column, String, DateTime, Index, ForeignKey
)
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime

from shared.database.base import Base


class PaymentIdempotencyRecord(Base):
    """Maps a gateway dedup key to the single payment it produced."""

    __tablename__ = "payment_idempotency_records"

    # Primary Key (the dedup key itself; its uniqueness serializes deliveries)
    dedup_key = Column(
        String(255),
        primary_key=True,
    )

    payment_id = Column(
        UUID(as_uuid=True),
        ForeignKey("lease_payments.id"),
        nullable=False,
    )

    # Lease the key was first used on; a replay against another lease is a conflict
    lease_id = Column(
        UUID(as_uuid=True),
        ForeignKey("lease_agreements.id"),
        nullable=False,
    )

    # Gateway that issued the key (MPESA, ...)
    source = Column(
        String(32),
        nullable=False,
        index=True,
    )

    # Expiration (for pruning)
    expires_at = Column(
        DateTime,
        nullable=False,
        index=True,
    )

    # Timestamp (when the record was created)
    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    # Indexes
    __table_args__ = (
        Index("idx_idempotency_source_created", "source", "created_at"),
    )

    def __repr__(self):
        return f"<PaymentIdempotencyRecord(dedup_key={self.dedup_key}, payment_id={self.payment_id})>"
