"""Request/response schemas for Payment API."""

from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from typing import Optional


class InitiatePaymentRequest(BaseModel):
    """Request an M-Pesa STK push for a lease."""

    amount: Decimal = Field(..., gt=0, decimal_places=2)
    phone: Optional[str] = Field(None, min_length=9, max_length=15, description="Defaults to the tenant's phone")

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        if isinstance(v, (int, float)):
            return Decimal(str(v))
        return v


class InitiatePaymentResponse(BaseModel):
    """Checkout reference; the ledger entry follows on confirmation."""

    checkout_id: str
    lease_id: UUID
    amount: Decimal
    phone: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class GatewayAck(BaseModel):
    """Daraja-style acknowledgement returned by every webhook."""

    ResultCode: int
    ResultDesc: str


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str
    error_code: Optional[str] = None
