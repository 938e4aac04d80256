"""Point-in-time property reports replayed from lease terms and the ledger."""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import begin_snapshot
from shared.exceptions import ValidationError
from shared.repositories.lease import LeaseRepository
from shared.repositories.payment import PaymentRepository
from services.lease_service.domain import schedule
from services.ledger_service.domain.ledger_service import end_of_day

logger = logging.getLogger(__name__)

MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")

# Aging buckets: label -> inclusive upper bound on days past due (None = open)
AGING_BUCKETS: List[Tuple[str, object]] = [
    ("0-30", 30),
    ("31-60", 60),
    ("61-90", 90),
    ("90+", None),
]


@dataclass
class RentRollRow:
    lease_id: UUID
    unit_id: str
    tenant_id: str
    due: Decimal
    paid: Decimal
    balance: Decimal


@dataclass
class ArrearsRow:
    lease_id: UUID
    unit_id: str
    tenant_id: str
    outstanding: Decimal
    max_days_past_due: int
    bucket: str


@dataclass
class ArrearsReport:
    as_of: date
    rows: List[ArrearsRow] = field(default_factory=list)
    buckets: Dict[str, Decimal] = field(
        default_factory=lambda: {label: Decimal("0") for label, _ in AGING_BUCKETS}
    )

    @property
    def total_outstanding(self) -> Decimal:
        return sum((row.outstanding for row in self.rows), Decimal("0"))


def parse_month(month: str) -> Tuple[date, date]:
    """'YYYY-MM' -> (first day, last day)."""
    match = MONTH_PATTERN.match(month or "")
    if not match:
        raise ValidationError("Invalid month format. Expected YYYY-MM")
    year, mon = int(match.group(1)), int(match.group(2))
    if not 1 <= mon <= 12:
        raise ValidationError("Invalid month format. Expected YYYY-MM")
    month_start = date(year, mon, 1)
    next_month = schedule.anchor_at(month_start, "monthly", 1)
    return month_start, next_month - timedelta(days=1)


def bucket_for(days_past_due: int) -> str:
    for label, upper in AGING_BUCKETS:
        if upper is None or days_past_due <= upper:
            return label
    return AGING_BUCKETS[-1][0]


def _midnight(value: date) -> datetime:
    return datetime.combine(value, datetime.min.time())


class ReportingService:
    """Rent roll and arrears aging for a property."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.lease_repo = LeaseRepository(session)
        self.payment_repo = PaymentRepository(session)

    async def rent_roll(self, property_id: str, month: str) -> List[RentRollRow]:
        """
        Expected vs. collected per lease for one calendar month.

        ``due`` counts anchors in [month_start, month_end] (both inclusive);
        ``paid`` sums payments with paid_at inside the month; ``balance``
        may be negative (credit).
        """
        month_start, month_end = parse_month(month)
        await begin_snapshot(self.session)

        leases = await self.lease_repo.get_billable_for_property(property_id, month_start, month_end)
        payments = await self.payment_repo.get_for_leases(
            [lease.id for lease in leases],
            paid_from=_midnight(month_start),
            paid_before=end_of_day(month_end),
        )

        rows = []
        for lease in leases:
            due = schedule.amount_due_between(lease, month_start, month_end)
            paid = sum(
                (Decimal(str(p.amount)) for p in payments.get(lease.id, [])),
                Decimal("0"),
            )
            rows.append(RentRollRow(
                lease_id=lease.id,
                unit_id=lease.unit_id,
                tenant_id=lease.tenant_id,
                due=due,
                paid=paid,
                balance=due - paid,
            ))

        logger.info(
            f"Rent roll for property {property_id} {month}: {len(rows)} leases",
            extra={"property_id": property_id},
        )
        return rows

    async def arrears_aging(self, property_id: str, as_of: date) -> ArrearsReport:
        """
        Outstanding balances bucketed by days past due.

        Only anchors strictly before ``as_of`` are in arrears; payments with
        paid_at on or before ``as_of`` count against them. Leases with
        nothing outstanding are omitted.
        """
        await begin_snapshot(self.session)

        leases = await self.lease_repo.get_billable_for_property(property_id, date.min, as_of)
        payments = await self.payment_repo.get_for_leases(
            [lease.id for lease in leases],
            paid_before=end_of_day(as_of),
        )

        report = ArrearsReport(as_of=as_of)
        for lease in leases:
            anchors = schedule.periods_between(lease, lease.start_date, as_of - timedelta(days=1)).dates()
            if not anchors:
                continue

            lease_payments = payments.get(lease.id, [])
            periods = schedule.allocate_fifo(schedule.priced(lease, anchors), lease_payments)

            due = sum((p.amount_due for p in periods), Decimal("0"))
            paid = sum((Decimal(str(p.amount)) for p in lease_payments), Decimal("0"))
            outstanding = due - paid
            if outstanding <= 0:
                continue

            oldest_unpaid = next(p.due_date for p in periods if p.balance > 0)
            days = (as_of - oldest_unpaid).days
            bucket = bucket_for(days)

            report.rows.append(ArrearsRow(
                lease_id=lease.id,
                unit_id=lease.unit_id,
                tenant_id=lease.tenant_id,
                outstanding=outstanding,
                max_days_past_due=days,
                bucket=bucket,
            ))
            report.buckets[bucket] += outstanding

        logger.info(
            f"Arrears for property {property_id} as of {as_of}: "
            f"{len(report.rows)} leases, {report.total_outstanding} outstanding",
            extra={"property_id": property_id},
        )
        return report
