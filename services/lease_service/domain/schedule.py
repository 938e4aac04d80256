"""Billing schedule derivation for leases.

Due dates ("anchors") are never stored; they are recomputed from the lease
terms on every read. Each anchor is priced at the amount in force on its
date (terms.amount_history), so a later rent change never re-prices past
periods. Calendar-month frequencies are computed from the first
anchor (anchor n = first + n*k months) so a day-31 anchor lands on the last
day of short months and returns to the 31st where the month has one.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterator, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from shared.models.lease import LeaseStatus, PaymentFrequency

logger = logging.getLogger(__name__)

# Upper bound on anchors produced by a single iteration
MAX_SCHEDULE_PERIODS = 10_000

_DAY_STEPS = {
    PaymentFrequency.WEEKLY: 7,
    PaymentFrequency.BIWEEKLY: 14,
}

_MONTH_STEPS = {
    PaymentFrequency.MONTHLY: 1,
    PaymentFrequency.QUARTERLY: 3,
    PaymentFrequency.YEARLY: 12,
}


def _frequency(value) -> PaymentFrequency:
    if value is None:
        return PaymentFrequency.MONTHLY
    return PaymentFrequency(value)


def first_anchor(lease) -> date:
    """First due date: first_payment_date when set, else start_date."""
    return lease.first_payment_date or lease.start_date


def anchor_at(first: date, frequency, n: int) -> date:
    """The n-th anchor (0-based) of a schedule starting at ``first``."""
    frequency = _frequency(frequency)
    if frequency in _DAY_STEPS:
        return first + relativedelta(days=_DAY_STEPS[frequency] * n)
    return first + relativedelta(months=_MONTH_STEPS[frequency] * n)


def _first_index_on_or_after(first: date, frequency: PaymentFrequency, lower: date) -> int:
    """Smallest n with anchor_at(first, frequency, n) >= lower."""
    if lower <= first:
        return 0

    if frequency in _DAY_STEPS:
        step = _DAY_STEPS[frequency]
        return -(-(lower - first).days // step)

    step = _MONTH_STEPS[frequency]
    months = (lower.year - first.year) * 12 + (lower.month - first.month)
    n = max(0, months // step - 1)
    while anchor_at(first, frequency, n) < lower:
        n += 1
    return n


class PeriodSchedule:
    """Ordered anchors of one lease between two inclusive bounds.

    Iterating twice yields the same dates; nothing is materialized until
    iterated.
    """

    def __init__(self, first: date, frequency, lower: date, upper: date):
        self.first = first
        self.frequency = _frequency(frequency)
        self.lower = lower
        self.upper = upper

    def __iter__(self) -> Iterator[date]:
        n = _first_index_on_or_after(self.first, self.frequency, self.lower)
        produced = 0
        while produced < MAX_SCHEDULE_PERIODS:
            anchor = anchor_at(self.first, self.frequency, n)
            if anchor > self.upper:
                return
            yield anchor
            produced += 1
            n += 1
        logger.warning(
            f"Schedule iteration capped at {MAX_SCHEDULE_PERIODS} periods "
            f"(first={self.first}, frequency={self.frequency.value})"
        )

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def dates(self) -> List[date]:
        return list(self)

    def __repr__(self):
        return (
            f"<PeriodSchedule(first={self.first}, frequency={self.frequency.value}, "
            f"lower={self.lower}, upper={self.upper})>"
        )


def periods_between(lease, start: date, end: date) -> PeriodSchedule:
    """Anchors a with start <= a <= end and a <= lease.end_date."""
    first = first_anchor(lease)
    return PeriodSchedule(
        first=first,
        frequency=lease.payment_frequency,
        lower=max(start, first),
        upper=min(end, lease.end_date),
    )


def billing_schedule(lease) -> PeriodSchedule:
    """Every anchor of the lease term."""
    return periods_between(lease, lease.start_date, lease.end_date)


def estimated_periods(lease) -> int:
    return len(billing_schedule(lease))


def next_due_date(lease, as_of: date) -> Optional[date]:
    """First anchor on or after ``as_of`` within the term; None if the lease
    is not active or every period has elapsed."""
    if LeaseStatus(lease.status) != LeaseStatus.ACTIVE:
        return None
    for anchor in periods_between(lease, as_of, lease.end_date):
        return anchor
    return None


def billing_cycle_day(lease) -> Optional[int]:
    """Day of month bills fall on, for calendar-month frequencies."""
    if _frequency(lease.payment_frequency) in _MONTH_STEPS:
        return first_anchor(lease).day
    return None


def amount_steps(lease) -> List[Tuple[date, Decimal]]:
    """(effective_from, amount) pairs from terms.amount_history, oldest first."""
    terms = getattr(lease, "terms", None) or {}
    steps = [
        (date.fromisoformat(step["effective_from"]), Decimal(str(step["amount"])))
        for step in terms.get("amount_history") or []
    ]
    return sorted(steps, key=lambda step: step[0])


def amount_on(lease, anchor: date) -> Decimal:
    """Amount due on ``anchor``: the latest step effective on or before it.

    Leases whose amount never changed have no history and use lease.amount.
    """
    steps = amount_steps(lease)
    if not steps:
        return Decimal(str(lease.amount))
    in_force = steps[0][1]
    for effective_from, amount in steps:
        if effective_from > anchor:
            break
        in_force = amount
    return in_force


def amount_history_with(lease, effective_from: date, amount: Decimal) -> List[dict]:
    """terms.amount_history once ``amount`` takes effect on ``effective_from``.

    Call before lease.amount is overwritten; the first change seeds the
    history with the original amount.
    """
    terms = getattr(lease, "terms", None) or {}
    history = list(terms.get("amount_history") or [])
    if not history:
        history.append({
            "effective_from": first_anchor(lease).isoformat(),
            "amount": str(lease.amount),
        })
    history.append({"effective_from": effective_from.isoformat(), "amount": str(amount)})
    return history


def priced(lease, anchors) -> List[Tuple[date, Decimal]]:
    return [(anchor, amount_on(lease, anchor)) for anchor in anchors]


def amount_due_between(lease, start: date, end: date) -> Decimal:
    """Sum of the amounts due on anchors in [start, end]."""
    return sum(
        (amount_on(lease, anchor) for anchor in periods_between(lease, start, end)),
        Decimal("0"),
    )


@dataclass
class AllocatedPeriod:
    """One schedule period after FIFO allocation of payments."""

    due_date: date
    amount_due: Decimal
    amount_paid: Decimal
    payments: list

    @property
    def balance(self) -> Decimal:
        return self.amount_due - self.amount_paid


def allocate_fifo(dues: List[Tuple[date, Decimal]], payments) -> List[AllocatedPeriod]:
    """Apply payments (ordered by paid_at) to the oldest unpaid periods first.

    ``dues`` holds (due_date, amount_due) pairs, see priced(). Each period's ``payments`` lists ``(payment, applied_amount)`` pairs.
    Money beyond the last period is left unallocated.
    """
    periods = [
        AllocatedPeriod(due_date=a, amount_due=Decimal(str(amount)), amount_paid=Decimal("0"), payments=[])
        for a, amount in dues
    ]
    for payment in payments:
        remaining = Decimal(str(payment.amount))
        for period in periods:
            if remaining <= 0:
                break
            if period.balance <= 0:
                continue
            applied = min(period.balance, remaining)
            period.amount_paid += applied
            period.payments.append((payment, applied))
            remaining -= applied
    return periods
