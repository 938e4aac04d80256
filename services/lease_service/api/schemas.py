"""Request/response schemas for Lease API."""

from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional

from shared.models.lease import (
    EsignatureStatus,
    LeaseChargeType,
    LeaseType,
    PaymentFrequency,
)


class EsignatureParty(BaseModel):
    """One party expected to sign the lease."""

    role: Optional[str] = None
    user_id: str = Field(..., min_length=1, max_length=64)
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: EsignatureStatus = EsignatureStatus.PENDING
    signed_at: Optional[datetime] = None


class CreateLeaseRequest(BaseModel):
    """Request to create a new lease."""

    tenant_id: str = Field(..., min_length=1, max_length=64)
    unit_id: str = Field(..., min_length=1, max_length=64)
    organization_id: Optional[str] = Field(None, max_length=64)
    landlord_id: Optional[str] = Field(None, max_length=64)
    start_date: date
    end_date: date
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    lease_type: LeaseType = LeaseType.FIXED_TERM
    charge_type: LeaseChargeType = LeaseChargeType.RENT
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    first_payment_date: Optional[date] = None
    esignatures: Optional[List[EsignatureParty]] = None
    signed_document_url: Optional[str] = None
    contract_hash: Optional[str] = None
    terms: Optional[dict] = None
    metadata: Optional[dict] = None

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        if isinstance(v, (int, float)):
            return Decimal(str(v))
        return v


class ExtendLeaseRequest(BaseModel):
    new_end_date: date
    new_amount: Optional[Decimal] = Field(None, gt=0, decimal_places=2)


class TerminateLeaseRequest(BaseModel):
    termination_date: date
    reason: Optional[str] = Field(None, max_length=500)


class SuspendLeaseRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class EsignatureUpdateRequest(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64)
    status: EsignatureStatus


class ExpireLeasesRequest(BaseModel):
    as_of: Optional[date] = None


class ExpireLeasesResponse(BaseModel):
    as_of: date
    expired: List[UUID]


class LeaseResponse(BaseModel):
    """Response schema for a lease."""

    lease_id: UUID
    tenant_id: str
    unit_id: str
    landlord_id: Optional[str] = None
    organization_id: str
    property_id: str
    status: str
    lease_type: str
    charge_type: str
    payment_frequency: str
    start_date: date
    end_date: date
    first_payment_date: Optional[date] = None
    next_due_date: Optional[date] = None
    amount: Decimal
    esignatures: Optional[List[dict]] = None
    signed_document_url: Optional[str] = None
    contract_hash: Optional[str] = None
    terms: Optional[dict] = None
    metadata: Optional[dict] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LeaseHistoryEvent(BaseModel):
    """Event from lease history."""

    event_id: int
    event_type: str
    timestamp: datetime
    payload: dict
    amount: Optional[Decimal] = None

    class Config:
        from_attributes = True


class LeaseHistoryResponse(BaseModel):
    """Response for lease audit trail."""

    lease_id: UUID
    tenant_id: str
    status: str
    total_events: int
    events: List[LeaseHistoryEvent]


class DueReminderResponse(BaseModel):
    lease_id: UUID
    sent: bool
    reason: str
    next_due_date: Optional[date] = None


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str
    error_code: Optional[str] = None

    class Config:
        from_attributes = True
