"""Ledger Service domain logic: idempotent payment append and lease statements."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.directory import DirectoryClient, get_directory
from shared.event_bus import event_bus, PAYMENT_EVENTS_TOPIC
from shared.event_persistence import EventPersister
from shared.events.schemas import PaymentRecordedEvent
from shared.exceptions import ConflictError, NotFoundError, ValidationError
from shared.models.lease import LeaseAgreement
from shared.models.payment import LeasePayment
from shared.notifications import notify_sms
from shared.repositories.idempotency import IdempotencyRepository
from shared.repositories.lease import LeaseRepository
from shared.repositories.payment import PaymentRepository
from shared.repositories.payment_type import LeasePaymentTypeRepository
from services.lease_service.domain import schedule
from services.lease_service.domain.schedule import AllocatedPeriod

logger = logging.getLogger(__name__)

MANUAL_SOURCE = "MANUAL"


@dataclass
class LeaseStatement:
    """Schedule periods of a lease with payments applied oldest-first."""

    lease: LeaseAgreement
    periods: List[AllocatedPeriod]
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    unallocated: Decimal = field(default=Decimal("0"))


def _as_datetime(value: Union[date, datetime, None]) -> datetime:
    if value is None:
        return datetime.utcnow()
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, datetime.min.time())


def scoped_dedup_key(source: str, key: str) -> str:
    """Dedup keys of every source share one table, so each is prefixed by its source."""
    return f"{source.upper()}:{key}"


def end_of_day(as_of: date) -> datetime:
    """Exclusive upper bound covering every timestamp on ``as_of``."""
    return datetime.combine(as_of + timedelta(days=1), datetime.min.time())


class LedgerService:
    """Append-only payment ledger with gateway dedup."""

    def __init__(
        self,
        session: AsyncSession,
        directory: Optional[DirectoryClient] = None,
        notifier: Callable[..., bool] = notify_sms,
    ):
        self.session = session
        self.lease_repo = LeaseRepository(session)
        self.payment_repo = PaymentRepository(session)
        self.payment_type_repo = LeasePaymentTypeRepository(session)
        self.idempotency_repo = IdempotencyRepository(session)
        self.event_persister = EventPersister(session)
        self.directory = directory
        self.notifier = notifier

    async def append(
        self,
        lease_id: UUID,
        amount: Decimal,
        paid_at: Union[date, datetime, None] = None,
        type_code: Optional[str] = None,
        provider: Optional[str] = None,
        provider_transaction_id: Optional[str] = None,
        metadata: Optional[dict] = None,
        dedup_key: Optional[str] = None,
        source: str = MANUAL_SOURCE,
    ) -> Tuple[LeasePayment, bool]:
        """
        Append a payment to a lease's ledger.

        With a ``dedup_key`` the append is idempotent: concurrent or repeated
        deliveries of the same key produce exactly one payment, and every
        caller gets that payment back. Keys are scoped by ``source``; reusing
        a key for another lease or amount is a conflict.

        Returns:
            (payment, created) where ``created`` is False for a replay

        Raises:
            ValidationError: Non-positive amount or unknown payment type
            NotFoundError: Unknown or deleted lease
            ConflictError: Dedup key already used for another lease or amount
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationError("Payment amount must be positive")

        if dedup_key:
            dedup_key = scoped_dedup_key(source, dedup_key)
            existing = await self._replayed_payment(dedup_key, lease_id, amount)
            if existing is not None:
                logger.info(
                    f"Duplicate payment delivery ignored (dedup key: {dedup_key})",
                    extra={"dedup_key": dedup_key, "payment_id": str(existing.id)},
                )
                return existing, False

        lease = await self.lease_repo.get_by_id(lease_id)
        if lease is None:
            raise NotFoundError(f"Lease not found: {lease_id}")

        code = (type_code or settings.default_payment_type_code).upper()
        payment_type = await self.payment_type_repo.get_by_code(code, lease.organization_id)
        if payment_type is None:
            raise ValidationError(f"Unknown payment type: {code}")

        payment = LeasePayment(
            lease_id=lease.id,
            tenant_id=lease.tenant_id,
            unit_id=lease.unit_id,
            property_id=lease.property_id,
            organization_id=lease.organization_id,
            amount=amount,
            paid_at=_as_datetime(paid_at),
            type_code=payment_type.code,
            provider=provider,
            provider_transaction_id=provider_transaction_id,
            payment_metadata=metadata,
        )

        try:
            await self.payment_repo.create(payment)
            if dedup_key:
                await self.idempotency_repo.store(
                    dedup_key=dedup_key,
                    payment_id=payment.id,
                    lease_id=lease.id,
                    source=source,
                    retention_days=settings.idempotency_retention_days,
                )

            event = PaymentRecordedEvent(
                lease_id=lease.id,
                payment_id=payment.id,
                amount=amount,
                paid_at=payment.paid_at,
                type_code=payment.type_code,
                provider=provider,
                provider_transaction_id=provider_transaction_id,
            )
            await self.event_persister.persist_event(event)
            await self.payment_repo.commit()

        except IntegrityError:
            await self.payment_repo.rollback()
            if not dedup_key:
                raise
            # Another delivery of the same key committed first
            existing = await self._replayed_payment(dedup_key, lease_id, amount)
            if existing is None:
                raise
            logger.info(
                f"Concurrent payment delivery lost the race (dedup key: {dedup_key})",
                extra={"dedup_key": dedup_key, "payment_id": str(existing.id)},
            )
            return existing, False

        except Exception as e:
            logger.error(f"Failed to append payment to lease {lease_id}: {e}")
            await self.payment_repo.rollback()
            raise

        logger.info(
            f"Recorded payment {payment.id} of {amount} on lease {lease_id}",
            extra={
                "lease_id": str(lease_id),
                "payment_id": str(payment.id),
                "source": source,
            },
        )

        await event_bus.publish_event(event, topic=PAYMENT_EVENTS_TOPIC)
        await self._send_receipt(lease, payment)
        return payment, True

    async def payments_for_lease(
        self,
        lease_id: UUID,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[LeasePayment]:
        """Payments of a lease ordered by paid_at."""
        await self._require_lease(lease_id)
        return await self.payment_repo.get_by_lease_id(lease_id, skip=skip, limit=limit)

    async def payment_count(self, lease_id: UUID) -> int:
        await self._require_lease(lease_id)
        return await self.payment_repo.count_for_lease(lease_id)

    async def total_paid(self, lease_id: UUID, as_of: Optional[date] = None) -> Decimal:
        """Sum of payments, optionally only those paid on or before ``as_of``."""
        await self._require_lease(lease_id)
        paid_before = end_of_day(as_of) if as_of is not None else None
        return await self.payment_repo.get_total_for_lease(lease_id, paid_before)

    async def lease_statement(self, lease_id: UUID) -> LeaseStatement:
        """Every schedule period of the lease with payments allocated FIFO."""
        lease = await self._require_lease(lease_id)
        payments = await self.payment_repo.get_by_lease_id(lease_id)

        anchors = schedule.billing_schedule(lease).dates()
        periods = schedule.allocate_fifo(schedule.priced(lease, anchors), payments)

        total_due = sum((p.amount_due for p in periods), Decimal("0"))
        total_paid = sum((p.amount_paid for p in periods), Decimal("0"))
        received = sum((Decimal(str(p.amount)) for p in payments), Decimal("0"))

        return LeaseStatement(
            lease=lease,
            periods=periods,
            total_due=total_due,
            total_paid=total_paid,
            outstanding=max(Decimal("0"), total_due - total_paid),
            unallocated=received - total_paid,
        )

    async def _replayed_payment(
        self, dedup_key: str, lease_id: UUID, amount: Decimal
    ) -> Optional[LeasePayment]:
        record = await self.idempotency_repo.get_by_id(dedup_key)
        if record is None:
            return None
        payment = await self.payment_repo.get_by_id(record.payment_id)
        if record.lease_id != lease_id or payment.amount != amount:
            logger.warning(
                f"Dedup key {dedup_key} reused for a different payment",
                extra={"dedup_key": dedup_key, "lease_id": str(lease_id)},
            )
            raise ConflictError(
                f"Idempotency key already used for payment {payment.id} "
                f"on lease {record.lease_id} with amount {payment.amount}"
            )
        return payment

    async def _require_lease(self, lease_id: UUID) -> LeaseAgreement:
        lease = await self.lease_repo.get_by_id(lease_id)
        if lease is None:
            raise NotFoundError(f"Lease not found: {lease_id}")
        return lease

    async def _send_receipt(self, lease: LeaseAgreement, payment: LeasePayment) -> None:
        """Text the tenant a receipt. Never raises."""
        try:
            directory = self.directory or get_directory()
            tenant = await directory.get_tenant(lease.tenant_id)
            message = (
                f"Payment of {payment.amount} received for your lease on "
                f"{payment.paid_at.date().isoformat()}. Thank you."
            )
            self.notifier(tenant.phone, message, "LEASE_PAYMENT_RECEIPT")
        except Exception as e:
            logger.warning(
                f"Could not send payment receipt for {payment.id}: {e}",
                extra={"lease_id": str(lease.id)},
            )
