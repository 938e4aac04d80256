from sqlalchemy import Column, String, Text, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4

from shared.database.base import Base


# System-wide catalog entries seeded at startup
DEFAULT_PAYMENT_TYPES = (
    ("RENT", "Rent", "Recurring rent payment"),
    ("DEPOSIT", "Deposit", "Security deposit"),
    ("LATE_FEE", "Late Payment Fee", "Penalty for late payment"),
    ("UTILITY", "Utility", "Water, power or service charge"),
    ("ADJUSTMENT", "Adjustment", "Compensating entry correcting an earlier payment"),
)


class LeasePaymentType(Base):
    """Payment-type catalog entry (RENT, DEPOSIT, LATE_FEE, ...)."""

    __tablename__ = "lease_payment_types"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    code = Column(String(32), nullable=False, index=True)
    name = Column(String(64), nullable=False)
    description = Column(Text, nullable=True)

    # Null for system defaults, set for per-organization entries
    organization_id = Column(String(64), nullable=True)

    config = Column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("organization_id", "code", name="uq_payment_type_org_code"),
    )

    def __repr__(self):
        return f"<LeasePaymentType(code={self.code}, organization_id={self.organization_id})>"
