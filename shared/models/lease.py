from sqlalchemy import (
    Column, String, Numeric, Date, DateTime, Index, JSON, Enum as SQLEnum
)
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
from uuid import uuid4
import enum

from shared.database.base import Base


class LeaseStatus(str, enum.Enum):
    """Lease status enumeration."""
    PENDING = "pending"
    ACTIVE = "active"
    TERMINATED = "terminated"
    EXPIRED = "expired"
    SUSPENDED = "suspended"


class LeaseType(str, enum.Enum):
    """Lease modality."""
    FIXED_TERM = "fixed_term"
    PERIODIC = "periodic"


class LeaseChargeType(str, enum.Enum):
    """What the recurring amount is charged for."""
    RENT = "rent"
    OTHER = "other"


class PaymentFrequency(str, enum.Enum):
    """Billing cadence of a lease."""
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class EsignatureStatus(str, enum.Enum):
    """Status of a single e-signature party."""
    PENDING = "pending"
    SIGNED = "signed"
    REJECTED = "rejected"
    CANCELED = "canceled"


# Statuses that still occupy a unit for overlap checks
OCCUPYING_STATUSES = (
    LeaseStatus.PENDING,
    LeaseStatus.ACTIVE,
    LeaseStatus.SUSPENDED,
)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class LeaseAgreement(Base):
    """Lease agreement between a tenant and the owner of a property unit."""

    __tablename__ = "lease_agreements"

    # Primary Key
    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    # References (owned by the directory collaborator)
    unit_id = Column(String(64), nullable=False, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    landlord_id = Column(String(64), nullable=True, index=True)
    organization_id = Column(String(64), nullable=False, index=True)
    property_id = Column(String(64), nullable=False, index=True)

    # Term
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    first_payment_date = Column(Date, nullable=True)

    amount = Column(
        Numeric(14, 2),
        nullable=False,
    )

    lease_type = Column(
        SQLEnum(LeaseType, values_callable=_enum_values),
        nullable=False,
        default=LeaseType.FIXED_TERM,
    )

    charge_type = Column(
        SQLEnum(LeaseChargeType, values_callable=_enum_values),
        nullable=False,
        default=LeaseChargeType.RENT,
    )

    payment_frequency = Column(
        SQLEnum(PaymentFrequency, values_callable=_enum_values),
        nullable=False,
        default=PaymentFrequency.MONTHLY,
    )

    status = Column(
        SQLEnum(LeaseStatus, values_callable=_enum_values),
        nullable=False,
        default=LeaseStatus.PENDING,
        index=True,
    )

    # E-signature workflow and signed contract
    esignatures = Column(JSON, nullable=True)
    signed_document_url = Column(String(256), nullable=True)
    contract_hash = Column(String(256), nullable=True)

    # Free-form terms (billing summary, termination record, ...)
    terms = Column(JSON, nullable=True)
    lease_metadata = Column("metadata", JSON, nullable=True)

    # Timestamps
    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    deleted_at = Column(
        DateTime,
        nullable=True,
    )

    # Indexes
    __table_args__ = (
        Index("idx_lease_unit_status", "unit_id", "status"),
        Index("idx_lease_property", "property_id", "deleted_at"),
        Index("idx_lease_status_end", "status", "end_date"),
    )

    def __repr__(self):
        return f"<LeaseAgreement(id={self.id}, unit_id={self.unit_id}, status={self.status})>"
