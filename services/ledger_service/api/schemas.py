"""Schemas for Ledger Service API endpoints."""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime, date
from uuid import UUID
from decimal import Decimal
from typing import Optional, List, Dict, Any


class RecordPaymentRequest(BaseModel):
    """Manual payment entry (cash, bank transfer, adjustment)."""

    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Amount received")
    paid_at: Optional[datetime] = Field(None, description="When the money was received (default now)")
    type_code: Optional[str] = Field(None, max_length=32, description="Payment type code, e.g. RENT")
    provider: Optional[str] = Field(None, max_length=32)
    provider_transaction_id: Optional[str] = Field(None, max_length=128)
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        if isinstance(v, (int, float)):
            return Decimal(str(v))
        return v


class PaymentResponse(BaseModel):
    """One ledger entry."""

    payment_id: UUID = Field(..., description="Payment ID")
    lease_id: UUID = Field(..., description="Associated lease ID")
    amount: Decimal
    paid_at: datetime = Field(..., description="Economic event time")
    type_code: str
    provider: Optional[str] = None
    provider_transaction_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(..., description="Ingestion time")


class RecordPaymentResponse(PaymentResponse):
    created: bool = Field(..., description="False when the Idempotency-Key was already used")


class PaymentTotalResponse(BaseModel):
    lease_id: UUID
    as_of: Optional[date] = None
    total_paid: Decimal


class StatementPeriodResponse(BaseModel):
    due_date: date
    amount_due: Decimal
    amount_paid: Decimal
    balance: Decimal


class LeaseLedgerResponse(BaseModel):
    """Schedule periods with payments applied oldest-first, plus totals."""

    lease_id: UUID
    status: str
    periods: List[StatementPeriodResponse]
    payments: List[PaymentResponse]
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    unallocated: Decimal


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code for programmatic handling")
