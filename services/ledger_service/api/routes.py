"""API routes for Ledger Service."""

import logging
from datetime import date
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import get_db
from shared.directory import DirectoryClient, get_directory
from shared.exceptions import LeaseEngineError
from shared.models.lease import LeaseStatus
from shared.models.payment import LeasePayment
from services.ledger_service.api.schemas import (
    ErrorResponse,
    LeaseLedgerResponse,
    PaymentResponse,
    PaymentTotalResponse,
    RecordPaymentRequest,
    RecordPaymentResponse,
    StatementPeriodResponse,
)
from services.ledger_service.domain.ledger_service import LedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/leases", tags=["ledger"])


def _payment_response(payment: LeasePayment) -> PaymentResponse:
    return PaymentResponse(
        payment_id=payment.id,
        lease_id=payment.lease_id,
        amount=payment.amount,
        paid_at=payment.paid_at,
        type_code=payment.type_code,
        provider=payment.provider,
        provider_transaction_id=payment.provider_transaction_id,
        metadata=payment.payment_metadata,
        created_at=payment.created_at,
    )


@router.post(
    "/{lease_id}/payments",
    response_model=RecordPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        200: {"description": "Idempotency-Key replay, existing payment returned"},
        400: {"description": "Invalid amount or payment type", "model": ErrorResponse},
        404: {"description": "Lease not found", "model": ErrorResponse},
        409: {"description": "Idempotency-Key already used for another lease or amount", "model": ErrorResponse},
    },
)
async def record_payment(
    lease_id: UUID,
    request: RecordPaymentRequest,
    response: Response,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
    directory: DirectoryClient = Depends(get_directory),
) -> RecordPaymentResponse:
    """
    Append a manual payment to the lease ledger.

    Sending the same Idempotency-Key twice records the payment once; the
    replay answers 200 with the original entry. Reusing a key with another
    lease or amount answers 409.
    """
    try:
        service = LedgerService(db, directory=directory)
        payment, created = await service.append(
            lease_id=lease_id,
            amount=request.amount,
            paid_at=request.paid_at,
            type_code=request.type_code,
            provider=request.provider,
            provider_transaction_id=request.provider_transaction_id,
            metadata=request.metadata,
            dedup_key=idempotency_key,
        )
        if not created:
            response.status_code = status.HTTP_200_OK

        return RecordPaymentResponse(
            **_payment_response(payment).model_dump(),
            created=created,
        )

    except LeaseEngineError as e:
        logger.warning(f"Payment on lease {lease_id} rejected: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error recording payment on lease {lease_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to record payment")


@router.get(
    "/{lease_id}/payments",
    response_model=List[PaymentResponse],
    responses={
        404: {"description": "Lease not found", "model": ErrorResponse},
    },
)
async def list_payments(
    lease_id: UUID,
    response: Response,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> List[PaymentResponse]:
    """Payments of a lease ordered by paid_at; X-Total-Count carries the unpaged count."""
    try:
        service = LedgerService(db)
        payments = await service.payments_for_lease(lease_id, skip=skip, limit=limit)
        response.headers["X-Total-Count"] = str(await service.payment_count(lease_id))
        return [_payment_response(p) for p in payments]
    except LeaseEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error listing payments for lease {lease_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to list payments")


@router.get(
    "/{lease_id}/payments/total",
    response_model=PaymentTotalResponse,
    responses={
        404: {"description": "Lease not found", "model": ErrorResponse},
    },
)
async def get_total_paid(
    lease_id: UUID,
    as_of: Optional[date] = Query(None, description="Only count payments paid on or before this date"),
    db: AsyncSession = Depends(get_db),
) -> PaymentTotalResponse:
    try:
        total = await LedgerService(db).total_paid(lease_id, as_of)
        return PaymentTotalResponse(lease_id=lease_id, as_of=as_of, total_paid=total)
    except LeaseEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error totalling payments for lease {lease_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to total payments")


@router.get(
    "/{lease_id}/ledger",
    response_model=LeaseLedgerResponse,
    responses={
        404: {"description": "Lease not found", "model": ErrorResponse},
    },
)
async def get_lease_ledger(
    lease_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> LeaseLedgerResponse:
    """
    Lease statement: every schedule period with payments applied
    oldest-first, plus totals.
    """
    try:
        service = LedgerService(db)
        statement = await service.lease_statement(lease_id)
        payments = await service.payments_for_lease(lease_id)

        return LeaseLedgerResponse(
            lease_id=statement.lease.id,
            status=LeaseStatus(statement.lease.status).value,
            periods=[
                StatementPeriodResponse(
                    due_date=p.due_date,
                    amount_due=p.amount_due,
                    amount_paid=p.amount_paid,
                    balance=p.balance,
                )
                for p in statement.periods
            ],
            payments=[_payment_response(p) for p in payments],
            total_due=statement.total_due,
            total_paid=statement.total_paid,
            outstanding=statement.outstanding,
            unallocated=statement.unallocated,
        )

    except LeaseEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error building ledger for lease {lease_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to build lease ledger")
