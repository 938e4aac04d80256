"""Schemas for Reporting Service API endpoints."""

from pydantic import BaseModel, Field
from datetime import date
from uuid import UUID
from decimal import Decimal
from typing import Dict, List, Optional


class RentRollRowResponse(BaseModel):
    lease_id: UUID
    unit_id: str
    tenant_id: str
    due: Decimal = Field(..., description="Amount falling due in the month")
    paid: Decimal = Field(..., description="Payments received in the month")
    balance: Decimal = Field(..., description="due - paid; negative means credit")

    class Config:
        from_attributes = True


class RentRollResponse(BaseModel):
    property_id: str
    month: str = Field(..., description="YYYY-MM")
    rows: List[RentRollRowResponse]
    total_due: Decimal
    total_paid: Decimal
    total_balance: Decimal


class ArrearsRowResponse(BaseModel):
    lease_id: UUID
    unit_id: str
    tenant_id: str
    outstanding: Decimal
    max_days_past_due: int
    bucket: str

    class Config:
        from_attributes = True


class ArrearsResponse(BaseModel):
    property_id: str
    as_of: date
    rows: List[ArrearsRowResponse]
    buckets: Dict[str, Decimal] = Field(..., description="Outstanding per aging bucket")
    total_outstanding: Decimal


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str
    error_code: Optional[str] = None
