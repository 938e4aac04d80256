"""Payment API routes: STK push initiation and M-Pesa webhooks."""

import json
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import get_db
from shared.directory import DirectoryClient, get_directory
from shared.exceptions import LeaseEngineError
from shared.models.checkout import CheckoutStatus
from services.payment_service.domain.gateway_events import C2B_CONFIRMATION
from services.payment_service.domain.mpesa_gateway import MpesaGateway
from services.payment_service.domain.reconciliation_service import (
    ReconciliationService,
    reject,
)
from services.payment_service.api.schemas import (
    ErrorResponse,
    GatewayAck,
    InitiatePaymentRequest,
    InitiatePaymentResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["payments"],
)


def get_gateway() -> MpesaGateway:
    """FastAPI dependency for the Daraja client."""
    return MpesaGateway()


async def _read_webhook(request: Request, gateway: MpesaGateway):
    """Raw body -> decoded JSON (or the undecodable text), after the authenticity check."""
    raw_body = await request.body()
    if not gateway.verify_webhook(request.headers, raw_body):
        logger.warning(f"Rejected unauthenticated webhook on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )
    try:
        return json.loads(raw_body)
    except ValueError:
        return raw_body.decode("utf-8", errors="replace")


@router.post(
    "/leases/{lease_id}/payments/initiate",
    response_model=InitiatePaymentResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def initiate_payment(
    lease_id: UUID,
    request: InitiatePaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: MpesaGateway = Depends(get_gateway),
    directory: DirectoryClient = Depends(get_directory),
) -> InitiatePaymentResponse:
    """
    Prompt the payer's phone for a payment.

    Nothing is recorded in the ledger until M-Pesa confirms.

    Raises:
        400: Bad amount, inactive lease or no phone number
        404: Lease not found
        502: Daraja rejected the request
    """
    try:
        service = ReconciliationService(db, gateway=gateway, directory=directory)
        checkout = await service.initiate_payment(lease_id, request.amount, request.phone)

        return InitiatePaymentResponse(
            checkout_id=checkout.checkout_id,
            lease_id=checkout.lease_id,
            amount=checkout.amount,
            phone=checkout.phone,
            status=CheckoutStatus(checkout.status).value,
            created_at=checkout.created_at,
        )

    except LeaseEngineError as e:
        logger.warning(f"Payment initiation for lease {lease_id} failed: {e.message}")
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Error initiating payment for lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to initiate payment",
        )


@router.post("/payments/webhooks/mpesa", response_model=GatewayAck)
async def mpesa_stk_callback(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: MpesaGateway = Depends(get_gateway),
    directory: DirectoryClient = Depends(get_directory),
) -> dict:
    """STK push result callback. Always acknowledged once authenticated."""
    payload = await _read_webhook(request, gateway)
    service = ReconciliationService(db, gateway=gateway, directory=directory)
    try:
        outcome = await service.confirm_callback(payload)
    except Exception as e:
        logger.error(f"STK callback processing failed: {e}")
        return {"ResultCode": 0, "ResultDesc": "Received"}

    logger.info(
        f"STK callback {outcome.status}",
        extra={"payment_id": str(outcome.payment_id) if outcome.payment_id else None},
    )
    return outcome.ack


@router.post("/payments/webhooks/mpesa/c2b/validate", response_model=GatewayAck)
async def mpesa_c2b_validate(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: MpesaGateway = Depends(get_gateway),
) -> dict:
    """C2B validation: accept (ResultCode 0) or reject (ResultCode 1) synchronously."""
    payload = await _read_webhook(request, gateway)
    try:
        return await ReconciliationService(db, gateway=gateway).validate_callback(payload)
    except Exception as e:
        logger.error(f"C2B validation failed: {e}")
        return reject("Validation unavailable")


@router.post("/payments/webhooks/mpesa/c2b/confirm", response_model=GatewayAck)
async def mpesa_c2b_confirm(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: MpesaGateway = Depends(get_gateway),
    directory: DirectoryClient = Depends(get_directory),
) -> dict:
    """C2B confirmation: money has moved; record it once and acknowledge."""
    payload = await _read_webhook(request, gateway)
    service = ReconciliationService(db, gateway=gateway, directory=directory)
    try:
        outcome = await service.confirm_callback(payload, expected=C2B_CONFIRMATION)
    except Exception as e:
        logger.error(f"C2B confirmation processing failed: {e}")
        return {"ResultCode": 0, "ResultDesc": "Received"}

    logger.info(
        f"C2B confirmation {outcome.status}",
        extra={"payment_id": str(outcome.payment_id) if outcome.payment_id else None},
    )
    return outcome.ack
