from sqlalchemy import (
    Column, String, Numeric, DateTime, Enum as SQLEnum, ForeignKey
)
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
import enum

from shared.database.base import Base


class CheckoutStatus(str, enum.Enum):
    """Status of a gateway checkout request."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class GatewayCheckout(Base):
    """A payment initiation handed to the gateway, awaiting confirmation."""

    __tablename__ = "gateway_checkouts"

    # Primary Key (gateway-issued checkout reference)
    checkout_id = Column(
        String(128),
        primary_key=True,
    )

    provider = Column(String(32), nullable=False)

    lease_id = Column(
        UUID(as_uuid=True),
        ForeignKey("lease_agreements.id"),
        nullable=False,
        index=True,
    )

    tenant_id = Column(String(64), nullable=False)

    amount = Column(
        Numeric(14, 2),
        nullable=False,
    )

    phone = Column(String(32), nullable=False)

    status = Column(
        SQLEnum(CheckoutStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=CheckoutStatus.PENDING,
        index=True,
    )

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

    def __repr__(self):
        return f"<GatewayCheckout(checkout_id={self.checkout_id}, lease_id={self.lease_id}, status={self.status})>"
