"""Lease API routes."""

import logging
from datetime import date
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import get_db
from shared.directory import DirectoryClient, get_directory
from shared.exceptions import LeaseEngineError
from shared.models.lease import (
    LeaseAgreement,
    LeaseChargeType,
    LeaseStatus,
    LeaseType,
    PaymentFrequency,
)
from services.lease_service.domain import schedule
from services.lease_service.domain.lease_service import LeaseService
from services.lease_service.api.schemas import (
    CreateLeaseRequest,
    DueReminderResponse,
    ErrorResponse,
    EsignatureUpdateRequest,
    ExpireLeasesRequest,
    ExpireLeasesResponse,
    ExtendLeaseRequest,
    LeaseHistoryEvent,
    LeaseHistoryResponse,
    LeaseResponse,
    SuspendLeaseRequest,
    TerminateLeaseRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/leases",
    tags=["leases"],
)


def _lease_response(lease: LeaseAgreement, today: Optional[date] = None) -> LeaseResponse:
    return LeaseResponse(
        lease_id=lease.id,
        tenant_id=lease.tenant_id,
        unit_id=lease.unit_id,
        landlord_id=lease.landlord_id,
        organization_id=lease.organization_id,
        property_id=lease.property_id,
        status=LeaseStatus(lease.status).value,
        lease_type=LeaseType(lease.lease_type).value,
        charge_type=LeaseChargeType(lease.charge_type).value,
        payment_frequency=PaymentFrequency(lease.payment_frequency).value,
        start_date=lease.start_date,
        end_date=lease.end_date,
        first_payment_date=lease.first_payment_date,
        next_due_date=schedule.next_due_date(lease, today or date.today()),
        amount=lease.amount,
        esignatures=lease.esignatures,
        signed_document_url=lease.signed_document_url,
        contract_hash=lease.contract_hash,
        terms=lease.terms,
        metadata=lease.lease_metadata,
        created_at=lease.created_at,
        updated_at=lease.updated_at,
    )


def _http_error(e: LeaseEngineError, action: str) -> HTTPException:
    if e.status_code >= 500:
        logger.error(f"Error {action}: {e.message}")
    else:
        logger.warning(f"Rejected {action}: {e.message}")
    return HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "",
    response_model=LeaseResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_lease(
    request: CreateLeaseRequest,
    db: AsyncSession = Depends(get_db),
    directory: DirectoryClient = Depends(get_directory),
) -> LeaseResponse:
    """
    Create a new lease on a unit.

    The lease starts ``pending`` while any e-signature party has not signed,
    otherwise ``active``.

    Raises:
        400: If input validation fails
        404: If the unit or tenant is unknown
        409: If another lease occupies the unit in the requested range
    """
    try:
        service = LeaseService(db, directory=directory)
        lease = await service.create_lease(
            tenant_id=request.tenant_id,
            unit_id=request.unit_id,
            start_date=request.start_date,
            end_date=request.end_date,
            amount=request.amount,
            organization_id=request.organization_id,
            landlord_id=request.landlord_id,
            payment_frequency=request.payment_frequency,
            lease_type=request.lease_type,
            charge_type=request.charge_type,
            first_payment_date=request.first_payment_date,
            esignatures=[p.model_dump(mode="json", exclude_none=True) for p in request.esignatures or []],
            signed_document_url=request.signed_document_url,
            contract_hash=request.contract_hash,
            terms=request.terms,
            metadata=request.metadata,
        )
        return _lease_response(lease)

    except HTTPException:
        raise
    except LeaseEngineError as e:
        raise _http_error(e, "lease creation")
    except Exception as e:
        logger.error(f"Error creating lease: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create lease",
        )


@router.post("/expire", response_model=ExpireLeasesResponse)
async def expire_leases(
    request: ExpireLeasesRequest,
    db: AsyncSession = Depends(get_db),
) -> ExpireLeasesResponse:
    """Expire every active lease whose end date is before ``as_of`` (default today)."""
    as_of = request.as_of or date.today()
    try:
        expired = await LeaseService(db).expire_leases(as_of)
        return ExpireLeasesResponse(as_of=as_of, expired=expired)
    except LeaseEngineError as e:
        raise _http_error(e, "lease expiry")
    except Exception as e:
        logger.error(f"Error expiring leases: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to expire leases",
        )


@router.get("/tenant/{tenant_id}", response_model=List[LeaseResponse])
async def list_tenant_leases(
    tenant_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> List[LeaseResponse]:
    leases = await LeaseService(db).list_by_tenant(tenant_id, skip, limit)
    return [_lease_response(lease) for lease in leases]


@router.get("/landlord/{landlord_id}", response_model=List[LeaseResponse])
async def list_landlord_leases(
    landlord_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> List[LeaseResponse]:
    leases = await LeaseService(db).list_by_landlord(landlord_id, skip, limit)
    return [_lease_response(lease) for lease in leases]


@router.get("/unit/{unit_id}", response_model=List[LeaseResponse])
async def list_unit_leases(
    unit_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> List[LeaseResponse]:
    leases = await LeaseService(db).list_by_unit(unit_id, skip, limit)
    return [_lease_response(lease) for lease in leases]


@router.get("/scans/esignature-reminders", response_model=List[LeaseResponse])
async def scan_esignature_reminders(
    days_since_sent: int = Query(1, ge=0),
    db: AsyncSession = Depends(get_db),
) -> List[LeaseResponse]:
    """Pending leases still waiting on a signature."""
    leases = await LeaseService(db).find_leases_needing_esignature_reminders(days_since_sent)
    return [_lease_response(lease) for lease in leases]


@router.get("/scans/missing-payments", response_model=List[LeaseResponse])
async def scan_missing_payments(
    as_of: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[LeaseResponse]:
    """Active leases with a due date this month and no payment this month."""
    as_of = as_of or date.today()
    leases = await LeaseService(db).find_leases_with_missing_payments(as_of)
    return [_lease_response(lease, as_of) for lease in leases]


@router.get("/scans/upcoming-renewals", response_model=List[LeaseResponse])
async def scan_upcoming_renewals(
    window_days: int = Query(30, ge=0, le=3650),
    as_of: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> List[LeaseResponse]:
    as_of = as_of or date.today()
    leases = await LeaseService(db).find_upcoming_renewals(window_days, as_of)
    return [_lease_response(lease, as_of) for lease in leases]


@router.get(
    "/{lease_id}",
    response_model=LeaseResponse,
    responses={
        404: {"model": ErrorResponse},
    },
)
async def get_lease(
    lease_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> LeaseResponse:
    """
    Get a lease by ID, including its next due date.

    Raises:
        404: If lease not found or deleted
    """
    try:
        lease = await LeaseService(db).get_lease(lease_id)
        return _lease_response(lease)
    except LeaseEngineError as e:
        raise _http_error(e, f"lookup of lease {lease_id}")
    except Exception as e:
        logger.error(f"Error retrieving lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve lease",
        )


@router.post(
    "/{lease_id}/extend",
    response_model=LeaseResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def extend_lease(
    lease_id: UUID,
    request: ExtendLeaseRequest,
    db: AsyncSession = Depends(get_db),
) -> LeaseResponse:
    try:
        lease = await LeaseService(db).extend_lease(
            lease_id, request.new_end_date, request.new_amount
        )
        return _lease_response(lease)
    except LeaseEngineError as e:
        raise _http_error(e, f"extension of lease {lease_id}")
    except Exception as e:
        logger.error(f"Error extending lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to extend lease",
        )


@router.post(
    "/{lease_id}/terminate",
    response_model=LeaseResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def terminate_lease(
    lease_id: UUID,
    request: TerminateLeaseRequest,
    db: AsyncSession = Depends(get_db),
) -> LeaseResponse:
    """End a lease early; recorded payments and history are kept."""
    try:
        lease = await LeaseService(db).terminate_lease(
            lease_id, request.termination_date, request.reason
        )
        return _lease_response(lease)
    except LeaseEngineError as e:
        raise _http_error(e, f"termination of lease {lease_id}")
    except Exception as e:
        logger.error(f"Error terminating lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to terminate lease",
        )


@router.post("/{lease_id}/suspend", response_model=LeaseResponse)
async def suspend_lease(
    lease_id: UUID,
    request: SuspendLeaseRequest,
    db: AsyncSession = Depends(get_db),
) -> LeaseResponse:
    try:
        lease = await LeaseService(db).suspend_lease(lease_id, request.reason)
        return _lease_response(lease)
    except LeaseEngineError as e:
        raise _http_error(e, f"suspension of lease {lease_id}")
    except Exception as e:
        logger.error(f"Error suspending lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to suspend lease",
        )


@router.post("/{lease_id}/resume", response_model=LeaseResponse)
async def resume_lease(
    lease_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> LeaseResponse:
    try:
        lease = await LeaseService(db).resume_lease(lease_id)
        return _lease_response(lease)
    except LeaseEngineError as e:
        raise _http_error(e, f"resumption of lease {lease_id}")
    except Exception as e:
        logger.error(f"Error resuming lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to resume lease",
        )


@router.post("/{lease_id}/esignatures", response_model=LeaseResponse)
async def update_esignature(
    lease_id: UUID,
    request: EsignatureUpdateRequest,
    db: AsyncSession = Depends(get_db),
) -> LeaseResponse:
    """Record one party's signature; the lease activates once everyone has signed."""
    try:
        lease = await LeaseService(db).update_esignature(
            lease_id, request.user_id, request.status
        )
        return _lease_response(lease)
    except LeaseEngineError as e:
        raise _http_error(e, f"e-signature update on lease {lease_id}")
    except Exception as e:
        logger.error(f"Error updating e-signature on lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update e-signature",
        )


@router.delete("/{lease_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_lease(
    lease_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    try:
        await LeaseService(db).delete_lease(lease_id)
    except LeaseEngineError as e:
        raise _http_error(e, f"deletion of lease {lease_id}")
    except Exception as e:
        logger.error(f"Error deleting lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete lease",
        )


@router.get(
    "/{lease_id}/history",
    response_model=LeaseHistoryResponse,
    responses={
        404: {"model": ErrorResponse},
    },
)
async def get_lease_history(
    lease_id: UUID,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    event_type: Optional[str] = Query(None, description="Only events of this type, e.g. PAYMENT_RECORDED"),
    db: AsyncSession = Depends(get_db),
) -> LeaseHistoryResponse:
    """
    Get the audit trail for a lease.

    Returns chronological history of events affecting the lease.
    total_events counts every event regardless of paging or filter.
    """
    try:
        service = LeaseService(db)
        lease = await service.get_lease(lease_id)
        events = await service.get_lease_history(lease_id, skip, limit, event_type)

        return LeaseHistoryResponse(
            lease_id=lease.id,
            tenant_id=lease.tenant_id,
            status=LeaseStatus(lease.status).value,
            total_events=await service.count_history(lease_id),
            events=[
                LeaseHistoryEvent(
                    event_id=e.id,
                    event_type=e.event_type,
                    timestamp=e.created_at,
                    payload=e.event_payload or {},
                    amount=e.amount,
                )
                for e in events
            ],
        )

    except LeaseEngineError as e:
        raise _http_error(e, f"history of lease {lease_id}")
    except Exception as e:
        logger.error(f"Error retrieving history for lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve lease history",
        )


@router.post("/{lease_id}/remind-due", response_model=DueReminderResponse)
async def remind_due_payment(
    lease_id: UUID,
    today: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    directory: DirectoryClient = Depends(get_directory),
) -> DueReminderResponse:
    """Text the tenant when a payment is due today."""
    try:
        result = await LeaseService(db, directory=directory).send_due_payment_reminder(
            lease_id, today or date.today()
        )
        return DueReminderResponse(lease_id=lease_id, **result)
    except LeaseEngineError as e:
        raise _http_error(e, f"due reminder for lease {lease_id}")
    except Exception as e:
        logger.error(f"Error sending due reminder for lease {lease_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send reminder",
        )
