from sqlalchemy import (
    Column, String, Numeric, DateTime, Index, JSON, ForeignKey
)
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
from uuid import uuid4

from shared.database.base import Base


class LeasePayment(Base):
    """A single payment appended to a lease's ledger.

    Rows are immutable once written; corrections are new compensating rows.
    """

    __tablename__ = "lease_payments"

    # Primary Key
    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # Foreign Key
    lease_id = Column(
        UUID(as_uuid=True),
        ForeignKey("lease_agreements.id"),
        nullable=False,
        index=True,
    )

    # Denormalized for reporting
    tenant_id = Column(String(64), nullable=False, index=True)
    unit_id = Column(String(64), nullable=False)
    property_id = Column(String(64), nullable=False, index=True)
    organization_id = Column(String(64), nullable=False)

    amount = Column(
        Numeric(14, 2),
        nullable=False,
    )

    # Economic event time (may differ from ingestion time)
    paid_at = Column(
        DateTime,
        nullable=False,
        index=True,
    )

    type_code = Column(
        String(32),
        nullable=False,
        index=True,
    )

    # Gateway reference
    provider = Column(String(32), nullable=True)
    provider_transaction_id = Column(String(128), nullable=True, index=True)

    payment_metadata = Column("metadata", JSON, nullable=True)

    # Ingestion time
    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    # Indexes
    __table_args__ = (
        Index("idx_payment_lease_paid_at", "lease_id", "paid_at"),
        Index("idx_payment_property_paid_at", "property_id", "paid_at"),
    )

    def __repr__(self):
        return f"<LeasePayment(id={self.id}, lease_id={self.lease_id}, amount={self.amount})>"
