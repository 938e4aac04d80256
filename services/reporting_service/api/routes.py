"""API routes for Reporting Service."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.database import get_db
from shared.exceptions import LeaseEngineError
from services.reporting_service.api.schemas import (
    ArrearsResponse,
    ArrearsRowResponse,
    ErrorResponse,
    RentRollResponse,
    RentRollRowResponse,
)
from services.reporting_service.domain.csv_export import arrears_csv, rent_roll_csv
from services.reporting_service.domain.reporting_service import ReportingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/properties/{property_id}/reports", tags=["reports"])

MONTH_QUERY = Query(..., description="Calendar month, YYYY-MM")
AS_OF_QUERY = Query(None, description="Report date (default today)")
MULTIPLIER_QUERY = Query(None, gt=0, description="Tax multiplier (default from settings)")


def _csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _report_error(e: Exception, report: str, property_id: str) -> HTTPException:
    if isinstance(e, LeaseEngineError):
        logger.warning(f"{report} for property {property_id} rejected: {e.message}")
        return HTTPException(status_code=e.status_code, detail=e.message)
    logger.error(f"Error building {report} for property {property_id}: {e}")
    return HTTPException(status_code=500, detail=f"Failed to build {report}")


@router.get(
    "/rent-roll",
    response_model=RentRollResponse,
    responses={400: {"description": "Invalid month", "model": ErrorResponse}},
)
async def get_rent_roll(
    property_id: str,
    month: str = MONTH_QUERY,
    db: AsyncSession = Depends(get_db),
) -> RentRollResponse:
    """
    Expected versus collected rent per lease for one month.

    Every non-pending lease of the property whose term touches the month
    appears, even when nothing falls due in it.
    """
    try:
        rows = await ReportingService(db).rent_roll(property_id, month)
    except Exception as e:
        raise _report_error(e, "rent roll", property_id)

    return RentRollResponse(
        property_id=property_id,
        month=month,
        rows=[RentRollRowResponse.model_validate(row) for row in rows],
        total_due=sum((row.due for row in rows), Decimal("0")),
        total_paid=sum((row.paid for row in rows), Decimal("0")),
        total_balance=sum((row.balance for row in rows), Decimal("0")),
    )


@router.get(
    "/arrears",
    response_model=ArrearsResponse,
    responses={400: {"description": "Invalid parameters", "model": ErrorResponse}},
)
async def get_arrears(
    property_id: str,
    as_of: Optional[date] = AS_OF_QUERY,
    db: AsyncSession = Depends(get_db),
) -> ArrearsResponse:
    """Outstanding balances by age of the oldest unpaid due date."""
    as_of = as_of or date.today()
    try:
        report = await ReportingService(db).arrears_aging(property_id, as_of)
    except Exception as e:
        raise _report_error(e, "arrears report", property_id)

    return ArrearsResponse(
        property_id=property_id,
        as_of=report.as_of,
        rows=[ArrearsRowResponse.model_validate(row) for row in report.rows],
        buckets=report.buckets,
        total_outstanding=report.total_outstanding,
    )


@router.get("/rent-roll.csv", response_class=Response)
async def export_rent_roll(
    property_id: str,
    month: str = MONTH_QUERY,
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        rows = await ReportingService(db).rent_roll(property_id, month)
        content = rent_roll_csv(rows)
    except Exception as e:
        raise _report_error(e, "rent roll export", property_id)
    return _csv_response(content, f"rent-roll-{property_id}-{month}.csv")


@router.get("/rent-roll-tax.csv", response_class=Response)
async def export_rent_roll_tax(
    property_id: str,
    month: str = MONTH_QUERY,
    multiplier: Optional[Decimal] = MULTIPLIER_QUERY,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Rent roll with monetary columns scaled by the tax multiplier."""
    try:
        rows = await ReportingService(db).rent_roll(property_id, month)
        content = rent_roll_csv(rows, multiplier or settings.report_tax_multiplier)
    except Exception as e:
        raise _report_error(e, "rent roll tax export", property_id)
    return _csv_response(content, f"rent-roll-tax-{property_id}-{month}.csv")


@router.get("/arrears.csv", response_class=Response)
async def export_arrears(
    property_id: str,
    as_of: Optional[date] = AS_OF_QUERY,
    db: AsyncSession = Depends(get_db),
) -> Response:
    as_of = as_of or date.today()
    try:
        report = await ReportingService(db).arrears_aging(property_id, as_of)
        content = arrears_csv(report)
    except Exception as e:
        raise _report_error(e, "arrears export", property_id)
    return _csv_response(content, f"arrears-{property_id}-{as_of.isoformat()}.csv")


@router.get("/arrears-tax.csv", response_class=Response)
async def export_arrears_tax(
    property_id: str,
    as_of: Optional[date] = AS_OF_QUERY,
    multiplier: Optional[Decimal] = MULTIPLIER_QUERY,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Arrears with outstanding amounts scaled by the tax multiplier."""
    as_of = as_of or date.today()
    try:
        report = await ReportingService(db).arrears_aging(property_id, as_of)
        content = arrears_csv(report, multiplier or settings.report_tax_multiplier)
    except Exception as e:
        raise _report_error(e, "arrears tax export", property_id)
    return _csv_response(content, f"arrears-tax-{property_id}-{as_of.isoformat()}.csv")
