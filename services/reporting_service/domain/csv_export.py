"""CSV rendering of property reports.

The tax variant scales monetary columns by a multiplier before formatting;
it never touches the ledger.
"""

import csv
from decimal import Decimal, ROUND_HALF_UP
from io import StringIO
from typing import Iterable, List, Optional, Sequence

from shared.exceptions import ValidationError
from .reporting_service import ArrearsReport, RentRollRow

RENT_ROLL_HEADERS = ["lease_id", "unit_id", "tenant_id", "due", "paid", "balance"]

ARREARS_HEADERS = ["lease_id", "unit_id", "tenant_id", "outstanding", "max_days_past_due", "bucket"]

CENTS = Decimal("0.01")


def to_csv(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    """Header row plus one row per record, joined by newlines.

    Fields containing a comma, quote or newline are double-quoted with
    embedded quotes doubled.
    """
    buffer = StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if value is None else str(value) for value in row])
    text = buffer.getvalue()
    return text[:-1] if text.endswith("\n") else text


def _check_multiplier(multiplier: Decimal) -> Decimal:
    multiplier = Decimal(str(multiplier))
    if multiplier <= 0:
        raise ValidationError("Tax multiplier must be positive")
    return multiplier


def _money(value: Decimal, multiplier: Optional[Decimal]) -> str:
    if multiplier is None:
        return str(value)
    return str((Decimal(str(value)) * multiplier).quantize(CENTS, rounding=ROUND_HALF_UP))


def rent_roll_csv(rows: List[RentRollRow], multiplier: Optional[Decimal] = None) -> str:
    if multiplier is not None:
        multiplier = _check_multiplier(multiplier)
    return to_csv(
        RENT_ROLL_HEADERS,
        (
            [
                row.lease_id,
                row.unit_id,
                row.tenant_id,
                _money(row.due, multiplier),
                _money(row.paid, multiplier),
                _money(row.balance, multiplier),
            ]
            for row in rows
        ),
    )


def arrears_csv(report: ArrearsReport, multiplier: Optional[Decimal] = None) -> str:
    if multiplier is not None:
        multiplier = _check_multiplier(multiplier)
    return to_csv(
        ARREARS_HEADERS,
        (
            [
                row.lease_id,
                row.unit_id,
                row.tenant_id,
                _money(row.outstanding, multiplier),
                row.max_days_past_due,
                row.bucket,
            ]
            for row in report.rows
        ),
    )
