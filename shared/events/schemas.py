"""Event schemas for lease lifecycle and payment reconciliation."""

from pydantic import BaseModel, Field
from datetime import datetime, date
from uuid import UUID, uuid4
from decimal import Decimal
from typing import Optional


class BaseEvent(BaseModel):
    """Base event schema with common fields."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    lease_id: UUID


class LeaseCreatedEvent(BaseEvent):
    """Event emitted when a lease is created."""

    event_type: str = Field(default="LEASE_CREATED")
    tenant_id: str
    unit_id: str
    property_id: str
    amount: Decimal
    start_date: date
    end_date: date
    status: str


class LeaseActivatedEvent(BaseEvent):
    """Event emitted when a pending lease becomes active."""

    event_type: str = Field(default="LEASE_ACTIVATED")


class LeaseExtendedEvent(BaseEvent):
    """Event emitted when a lease term is extended."""

    event_type: str = Field(default="LEASE_EXTENDED")
    previous_end_date: date
    new_end_date: date
    amount: Decimal


class LeaseTerminatedEvent(BaseEvent):
    """Event emitted when a lease is terminated early."""

    event_type: str = Field(default="LEASE_TERMINATED")
    termination_date: date
    reason: Optional[str] = None


class LeaseExpiredEvent(BaseEvent):
    """Event emitted when a lease reaches its end date."""

    event_type: str = Field(default="LEASE_EXPIRED")
    end_date: date


class LeaseSuspendedEvent(BaseEvent):
    """Event emitted when a lease is suspended."""

    event_type: str = Field(default="LEASE_SUSPENDED")
    reason: Optional[str] = None


class LeaseResumedEvent(BaseEvent):
    """Event emitted when a suspended lease is resumed."""

    event_type: str = Field(default="LEASE_RESUMED")


class LeaseDeletedEvent(BaseEvent):
    """Event emitted when a lease is soft-deleted."""

    event_type: str = Field(default="LEASE_DELETED")


class EsignatureUpdatedEvent(BaseEvent):
    """Event emitted when an e-signature party changes status."""

    event_type: str = Field(default="ESIGNATURE_UPDATED")
    user_id: str
    status: str
    all_signed: bool


class PaymentRecordedEvent(BaseEvent):
    """Event emitted when a payment is appended to the ledger."""

    event_type: str = Field(default="PAYMENT_RECORDED")
    payment_id: UUID
    amount: Decimal
    paid_at: datetime
    type_code: str
    provider: Optional[str] = None
    provider_transaction_id: Optional[str] = None
