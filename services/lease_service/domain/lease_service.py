"""Core lease business logic."""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from shared.directory import DirectoryClient, get_directory
from shared.event_bus import event_bus
from shared.event_persistence import EventPersister
from shared.events.schemas import (
    BaseEvent,
    EsignatureUpdatedEvent,
    LeaseActivatedEvent,
    LeaseCreatedEvent,
    LeaseDeletedEvent,
    LeaseExpiredEvent,
    LeaseExtendedEvent,
    LeaseResumedEvent,
    LeaseSuspendedEvent,
    LeaseTerminatedEvent,
)
from shared.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from shared.models.lease import (
    EsignatureStatus,
    LeaseAgreement,
    LeaseChargeType,
    LeaseStatus,
    LeaseType,
    PaymentFrequency,
)
from shared.models.lease_event import LeaseEvent
from shared.notifications import notify_sms
from shared.repositories.lease import LeaseRepository
from shared.repositories.lease_event import LeaseEventRepository
from . import schedule

logger = logging.getLogger(__name__)


class LeaseStateMachine:
    """State machine for lease status transitions."""

    # Valid transitions: from_status -> [valid_to_statuses]
    VALID_TRANSITIONS = {
        LeaseStatus.PENDING: [LeaseStatus.ACTIVE, LeaseStatus.TERMINATED],
        LeaseStatus.ACTIVE: [
            LeaseStatus.TERMINATED,
            LeaseStatus.EXPIRED,
            LeaseStatus.SUSPENDED,
        ],
        LeaseStatus.SUSPENDED: [
            LeaseStatus.ACTIVE,
            LeaseStatus.TERMINATED,
            LeaseStatus.EXPIRED,
        ],
        LeaseStatus.TERMINATED: [],  # Terminal state
        LeaseStatus.EXPIRED: [],  # Terminal state
    }

    @classmethod
    def can_transition(
        cls,
        from_status: LeaseStatus,
        to_status: LeaseStatus,
    ) -> bool:
        """Check if transition is allowed."""
        from_status = LeaseStatus(from_status)
        if from_status not in cls.VALID_TRANSITIONS:
            return False

        return LeaseStatus(to_status) in cls.VALID_TRANSITIONS[from_status]

    @classmethod
    def validate_transition(
        cls,
        from_status: LeaseStatus,
        to_status: LeaseStatus,
    ) -> None:
        """Validate transition, raise error if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(
                f"Invalid transition: {LeaseStatus(from_status).value} -> "
                f"{LeaseStatus(to_status).value}"
            )


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class LeaseService:
    """Service for lease lifecycle operations."""

    def __init__(
        self,
        session: AsyncSession,
        directory: Optional[DirectoryClient] = None,
        notifier: Callable[..., bool] = notify_sms,
    ):
        self.session = session
        self.lease_repo = LeaseRepository(session)
        self.event_repo = LeaseEventRepository(session)
        self.event_persister = EventPersister(session)
        self.directory = directory or get_directory()
        self.notifier = notifier

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    async def create_lease(
        self,
        tenant_id: str,
        unit_id: str,
        start_date: date,
        end_date: date,
        amount: Decimal,
        organization_id: Optional[str] = None,
        landlord_id: Optional[str] = None,
        payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY,
        lease_type: LeaseType = LeaseType.FIXED_TERM,
        charge_type: LeaseChargeType = LeaseChargeType.RENT,
        first_payment_date: Optional[date] = None,
        esignatures: Optional[List[dict]] = None,
        signed_document_url: Optional[str] = None,
        contract_hash: Optional[str] = None,
        terms: Optional[dict] = None,
        metadata: Optional[dict] = None,
    ) -> LeaseAgreement:
        """
        Create a lease for a unit.

        The lease starts ``active`` unless an e-signature party has not
        signed yet, in which case it starts ``pending``.

        Raises:
            ValidationError: Bad amount or date range, organization mismatch
            NotFoundError: Unknown unit or tenant
            ConflictError: Another lease already occupies the unit in the range
        """
        amount = Decimal(str(amount))
        payment_frequency = PaymentFrequency(payment_frequency or PaymentFrequency.MONTHLY)
        self._validate_lease_inputs(amount, start_date, end_date, first_payment_date)
        parties = self._normalize_esignatures(esignatures)

        unit = await self.directory.get_unit(unit_id)
        await self.directory.get_tenant(tenant_id)

        if organization_id and organization_id != unit.organization_id:
            raise ValidationError(
                "organization_id does not match the unit's organization"
            )

        await self.lease_repo.lock_unit(unit_id)
        overlapping = await self.lease_repo.find_overlapping(unit_id, start_date, end_date)
        if overlapping:
            await self.lease_repo.rollback()
            raise ConflictError(
                f"Unit {unit_id} already has lease {overlapping[0].id} "
                f"overlapping {start_date}..{end_date}"
            )

        all_signed = all(p["status"] == EsignatureStatus.SIGNED.value for p in parties)
        status = LeaseStatus.ACTIVE if all_signed else LeaseStatus.PENDING

        lease = LeaseAgreement(
            tenant_id=tenant_id,
            unit_id=unit_id,
            landlord_id=landlord_id,
            organization_id=unit.organization_id,
            property_id=unit.property_id,
            start_date=start_date,
            end_date=end_date,
            amount=amount,
            lease_type=LeaseType(lease_type),
            charge_type=LeaseChargeType(charge_type),
            payment_frequency=payment_frequency,
            first_payment_date=first_payment_date or start_date,
            status=status,
            esignatures=parties or None,
            signed_document_url=signed_document_url,
            contract_hash=contract_hash,
            lease_metadata=metadata,
        )
        lease.terms = {**(terms or {}), "billing": self._billing_summary(lease)}

        try:
            await self.lease_repo.create(lease)
            event = LeaseCreatedEvent(
                lease_id=lease.id,
                tenant_id=tenant_id,
                unit_id=unit_id,
                property_id=lease.property_id,
                amount=amount,
                start_date=start_date,
                end_date=end_date,
                status=status.value,
            )
            await self.event_persister.persist_event(event)
            await self.lease_repo.commit()
        except Exception as e:
            logger.error(f"Failed to create lease for unit {unit_id}: {e}")
            await self.lease_repo.rollback()
            raise

        logger.info(
            f"Created lease {lease.id} for tenant {tenant_id} on unit {unit_id} ({status.value})",
            extra={"lease_id": str(lease.id), "unit_id": unit_id},
        )
        await event_bus.publish_event(event)
        return lease

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get_lease(self, lease_id: UUID) -> LeaseAgreement:
        """Get a lease by ID, raising NotFoundError for unknown or deleted leases."""
        lease = await self.lease_repo.get_by_id(lease_id)
        if lease is None:
            raise NotFoundError(f"Lease not found: {lease_id}")
        return lease

    async def list_by_tenant(self, tenant_id: str, skip: int = 0, limit: int = 100) -> List[LeaseAgreement]:
        return await self.lease_repo.get_by_tenant_id(tenant_id, skip, limit)

    async def list_by_landlord(self, landlord_id: str, skip: int = 0, limit: int = 100) -> List[LeaseAgreement]:
        return await self.lease_repo.get_by_landlord_id(landlord_id, skip, limit)

    async def list_by_unit(self, unit_id: str, skip: int = 0, limit: int = 100) -> List[LeaseAgreement]:
        return await self.lease_repo.get_by_unit_id(unit_id, skip, limit)

    async def get_lease_history(
        self,
        lease_id: UUID,
        skip: int = 0,
        limit: int = 100,
        event_type: Optional[str] = None,
    ) -> List[LeaseEvent]:
        """Audit trail of a lease, oldest first, optionally of one event type."""
        await self.get_lease(lease_id)
        if event_type:
            return await self.event_repo.get_lease_history_by_event_type(
                lease_id, event_type, skip, limit
            )
        return await self.event_repo.get_lease_history(lease_id, skip, limit)

    async def count_history(self, lease_id: UUID) -> int:
        return await self.event_repo.count_events_for_lease(lease_id)

    # ------------------------------------------------------------------ #
    # Term changes (serialized per lease row)
    # ------------------------------------------------------------------ #

    async def extend_lease(
        self,
        lease_id: UUID,
        new_end_date: date,
        new_amount: Optional[Decimal] = None,
    ) -> LeaseAgreement:
        """
        Move the end date of an active lease forward.

        A new amount applies to periods after the previous end date; periods
        already in the term keep the amount they were billed at.

        Raises:
            NotFoundError: Unknown lease
            InvalidTransitionError: Lease is not active
            ValidationError: New end date before current end date, bad amount
            ConflictError: The extension would overlap another lease on the unit
        """
        try:
            lease = await self._get_for_update(lease_id)

            if LeaseStatus(lease.status) != LeaseStatus.ACTIVE:
                raise InvalidTransitionError(
                    f"Only active leases can be extended (lease is {LeaseStatus(lease.status).value})"
                )
            if new_end_date < lease.end_date:
                raise ValidationError(
                    f"New end date {new_end_date} is before current end date {lease.end_date}"
                )
            if new_amount is not None:
                new_amount = Decimal(str(new_amount))
                if new_amount <= 0:
                    raise ValidationError("Amount must be positive")
                if new_amount != Decimal(str(lease.amount)) and new_end_date == lease.end_date:
                    raise ValidationError("A new amount needs a later end date to take effect")

            await self.lease_repo.lock_unit(lease.unit_id)
            overlapping = await self.lease_repo.find_overlapping(
                lease.unit_id, lease.end_date, new_end_date, exclude_id=lease.id
            )
            if overlapping:
                raise ConflictError(
                    f"Extension overlaps lease {overlapping[0].id} on unit {lease.unit_id}"
                )

            previous_end = lease.end_date
            terms = dict(lease.terms or {})
            if new_amount is not None and new_amount != Decimal(str(lease.amount)):
                # Periods up to the previous end keep their price
                terms["amount_history"] = schedule.amount_history_with(
                    lease, previous_end + timedelta(days=1), new_amount
                )
                lease.amount = new_amount
            lease.end_date = new_end_date
            lease.terms = {**terms, "billing": self._billing_summary(lease)}

            event = LeaseExtendedEvent(
                lease_id=lease.id,
                previous_end_date=previous_end,
                new_end_date=new_end_date,
                amount=Decimal(str(lease.amount)),
            )
            await self.event_persister.persist_event(event)
            await self.lease_repo.commit()

        except Exception:
            await self.lease_repo.rollback()
            raise

        logger.info(
            f"Extended lease {lease_id}: {previous_end} -> {new_end_date}",
            extra={"lease_id": str(lease_id)},
        )
        await event_bus.publish_event(event)
        return lease

    async def terminate_lease(
        self,
        lease_id: UUID,
        termination_date: date,
        reason: Optional[str] = None,
    ) -> LeaseAgreement:
        """
        End a lease early.

        The end date becomes the termination date, so no anchor after it is
        ever billed again. Recorded payments are untouched.
        """
        try:
            lease = await self._get_for_update(lease_id)
            LeaseStateMachine.validate_transition(lease.status, LeaseStatus.TERMINATED)

            if not (lease.start_date <= termination_date <= lease.end_date):
                raise ValidationError(
                    f"Termination date {termination_date} must lie within "
                    f"{lease.start_date}..{lease.end_date}"
                )

            lease.end_date = termination_date
            lease.status = LeaseStatus.TERMINATED
            lease.terms = {
                **(lease.terms or {}),
                "termination": {"reason": reason, "at": termination_date.isoformat()},
            }

            event = LeaseTerminatedEvent(
                lease_id=lease.id,
                termination_date=termination_date,
                reason=reason,
            )
            await self.event_persister.persist_event(event)
            await self.lease_repo.commit()

        except Exception:
            await self.lease_repo.rollback()
            raise

        logger.info(
            f"Terminated lease {lease_id} on {termination_date}",
            extra={"lease_id": str(lease_id), "reason": reason},
        )
        await event_bus.publish_event(event)
        return lease

    # ------------------------------------------------------------------ #
    # Status transitions
    # ------------------------------------------------------------------ #

    async def expire_leases(self, as_of: date) -> List[UUID]:
        """Move every active lease whose end date is before ``as_of`` to expired."""
        leases = await self.lease_repo.get_expirable(as_of)
        events = []

        try:
            for lease in leases:
                LeaseStateMachine.validate_transition(lease.status, LeaseStatus.EXPIRED)
                lease.status = LeaseStatus.EXPIRED
                event = LeaseExpiredEvent(lease_id=lease.id, end_date=lease.end_date)
                await self.event_persister.persist_event(event)
                events.append(event)
            await self.lease_repo.commit()
        except Exception as e:
            logger.error(f"Failed to expire leases as of {as_of}: {e}")
            await self.lease_repo.rollback()
            raise

        logger.info(f"Expired {len(events)} leases as of {as_of}")
        for event in events:
            await event_bus.publish_event(event)
        return [event.lease_id for event in events]

    async def suspend_lease(self, lease_id: UUID, reason: Optional[str] = None) -> LeaseAgreement:
        """Suspend an active lease (billing anchors keep running)."""
        event = LeaseSuspendedEvent(lease_id=lease_id, reason=reason)
        return await self._transition(lease_id, LeaseStatus.SUSPENDED, event)

    async def resume_lease(self, lease_id: UUID) -> LeaseAgreement:
        """Return a suspended lease to active."""
        if LeaseStatus((await self.get_lease(lease_id)).status) != LeaseStatus.SUSPENDED:
            raise InvalidTransitionError("Only suspended leases can be resumed")
        event = LeaseResumedEvent(lease_id=lease_id)
        return await self._transition(lease_id, LeaseStatus.ACTIVE, event)

    async def _transition(
        self,
        lease_id: UUID,
        new_status: LeaseStatus,
        event: BaseEvent,
    ) -> LeaseAgreement:
        try:
            lease = await self._get_for_update(lease_id)
            old_status = LeaseStatus(lease.status)
            LeaseStateMachine.validate_transition(old_status, new_status)
            lease.status = new_status
            await self.event_persister.persist_event(event)
            await self.lease_repo.commit()
        except Exception:
            await self.lease_repo.rollback()
            raise

        logger.info(
            f"Updated lease {lease_id} status: {old_status.value} -> {new_status.value}",
            extra={"lease_id": str(lease_id)},
        )
        await event_bus.publish_event(event)
        return lease

    async def update_esignature(
        self,
        lease_id: UUID,
        user_id: str,
        status: EsignatureStatus,
    ) -> LeaseAgreement:
        """
        Record one party's signature decision.

        Once every party has signed, a pending lease becomes active.
        """
        status = EsignatureStatus(status)
        if status == EsignatureStatus.PENDING:
            raise ValidationError("E-signature status must be signed, rejected or canceled")

        events: List[BaseEvent] = []
        try:
            lease = await self._get_for_update(lease_id)
            parties = [dict(p) for p in (lease.esignatures or [])]
            party = next((p for p in parties if p.get("user_id") == user_id), None)
            if party is None:
                raise NotFoundError(f"No e-signature party {user_id} on lease {lease_id}")
            if party.get("status") != EsignatureStatus.PENDING.value:
                raise ValidationError(
                    f"E-signature for {user_id} is already {party.get('status')}"
                )

            party["status"] = status.value
            if status == EsignatureStatus.SIGNED:
                party["signed_at"] = datetime.utcnow().isoformat()
            lease.esignatures = parties

            all_signed = all(p.get("status") == EsignatureStatus.SIGNED.value for p in parties)
            events.append(EsignatureUpdatedEvent(
                lease_id=lease.id,
                user_id=user_id,
                status=status.value,
                all_signed=all_signed,
            ))

            if all_signed and LeaseStatus(lease.status) == LeaseStatus.PENDING:
                LeaseStateMachine.validate_transition(lease.status, LeaseStatus.ACTIVE)
                lease.status = LeaseStatus.ACTIVE
                events.append(LeaseActivatedEvent(lease_id=lease.id))

            for event in events:
                await self.event_persister.persist_event(event)
            await self.lease_repo.commit()
        except Exception:
            await self.lease_repo.rollback()
            raise

        logger.info(
            f"E-signature of {user_id} on lease {lease_id} set to {status.value}",
            extra={"lease_id": str(lease_id)},
        )
        for event in events:
            await event_bus.publish_event(event)
        return lease

    async def delete_lease(self, lease_id: UUID) -> None:
        """Soft-delete a lease; it disappears from every query path."""
        try:
            lease = await self._get_for_update(lease_id)
            await self.lease_repo.soft_delete(lease)
            event = LeaseDeletedEvent(lease_id=lease.id)
            await self.event_persister.persist_event(event)
            await self.lease_repo.commit()
        except Exception:
            await self.lease_repo.rollback()
            raise

        logger.info(f"Deleted lease {lease_id}", extra={"lease_id": str(lease_id)})
        await event_bus.publish_event(event)

    # ------------------------------------------------------------------ #
    # Scans used by reminder and renewal schedulers
    # ------------------------------------------------------------------ #

    async def find_leases_needing_esignature_reminders(
        self,
        days_since_sent: int = 1,
        now: Optional[datetime] = None,
    ) -> List[LeaseAgreement]:
        """Pending leases older than ``days_since_sent`` with an unsigned party."""
        cutoff = (now or datetime.utcnow()) - timedelta(days=days_since_sent)
        leases = await self.lease_repo.get_pending_signature_since(cutoff)
        return [
            lease for lease in leases
            if any(p.get("status") == EsignatureStatus.PENDING.value for p in lease.esignatures or [])
        ]

    async def find_leases_with_missing_payments(self, as_of: date) -> List[LeaseAgreement]:
        """Active leases with an anchor due in the month of ``as_of`` but no payment that month."""
        month_start = as_of.replace(day=1)
        next_month = schedule.anchor_at(month_start, PaymentFrequency.MONTHLY, 1)
        month_end = next_month - timedelta(days=1)

        leases = await self.lease_repo.get_active_without_payment_between(
            as_of,
            datetime.combine(month_start, datetime.min.time()),
            datetime.combine(next_month, datetime.min.time()),
        )
        return [
            lease for lease in leases
            if len(schedule.periods_between(lease, month_start, month_end)) > 0
        ]

    async def find_upcoming_renewals(self, window_days: int, as_of: date) -> List[LeaseAgreement]:
        """Active leases ending within ``window_days`` of ``as_of``."""
        if window_days < 0:
            raise ValidationError("window_days must not be negative")
        return await self.lease_repo.get_active_ending_between(
            as_of, as_of + timedelta(days=window_days)
        )

    # ------------------------------------------------------------------ #
    # Notifications
    # ------------------------------------------------------------------ #

    async def send_due_payment_reminder(self, lease_id: UUID, today: date) -> dict:
        """Text the tenant when the next due date is today."""
        lease = await self.get_lease(lease_id)
        next_due = schedule.next_due_date(lease, today)

        if next_due is None:
            return {"sent": False, "reason": "no upcoming due date", "next_due_date": None}
        if next_due > today:
            return {"sent": False, "reason": "not yet due", "next_due_date": next_due}

        tenant = await self.directory.get_tenant(lease.tenant_id)
        message = (
            f"Reminder: rent of {schedule.amount_on(lease, next_due)} is due for your lease. "
            f"Due date: {next_due.isoformat()}"
        )
        sent = self.notifier(tenant.phone, message, "LEASE_PAYMENT_DUE")
        return {
            "sent": sent,
            "reason": "queued" if sent else "not delivered",
            "next_due_date": next_due,
        }

    async def send_esignature_reminder(self, lease: LeaseAgreement) -> int:
        """Text each pending signer that has a phone on record. Returns count queued."""
        queued = 0
        for party in lease.esignatures or []:
            if party.get("status") != EsignatureStatus.PENDING.value:
                continue
            phone = party.get("phone")
            if not phone and party.get("user_id") == lease.tenant_id:
                phone = (await self.directory.get_tenant(lease.tenant_id)).phone
            message = f"Reminder: lease {lease.id} is awaiting your signature."
            if self.notifier(phone, message, "LEASE_ESIGNATURE_REMINDER"):
                queued += 1
        return queued

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _get_for_update(self, lease_id: UUID) -> LeaseAgreement:
        lease = await self.lease_repo.get_by_id(lease_id, for_update=True)
        if lease is None:
            raise NotFoundError(f"Lease not found: {lease_id}")
        return lease

    @staticmethod
    def _billing_summary(lease: LeaseAgreement) -> dict:
        """Summary written to terms.billing for dashboards and automation."""
        return {
            "lease_type": LeaseType(lease.lease_type).value,
            "charge_type": LeaseChargeType(lease.charge_type).value,
            "payment_frequency": PaymentFrequency(lease.payment_frequency).value,
            "first_payment_date": _iso(schedule.first_anchor(lease)),
            "billing_cycle_day": schedule.billing_cycle_day(lease),
            "estimated_periods": schedule.estimated_periods(lease),
        }

    @staticmethod
    def _normalize_esignatures(esignatures: Optional[List[dict]]) -> List[dict]:
        parties = []
        for raw in esignatures or []:
            party = dict(raw)
            if not party.get("user_id"):
                raise ValidationError("Every e-signature party needs a user_id")
            try:
                party["status"] = EsignatureStatus(
                    party.get("status") or EsignatureStatus.PENDING
                ).value
            except ValueError:
                raise ValidationError(f"Invalid e-signature status: {party.get('status')}")
            if isinstance(party.get("signed_at"), datetime):
                party["signed_at"] = party["signed_at"].isoformat()
            parties.append(party)
        return parties

    @staticmethod
    def _validate_lease_inputs(
        amount: Decimal,
        start_date: date,
        end_date: date,
        first_payment_date: Optional[date],
    ) -> None:
        """Validate lease creation inputs."""
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        if not end_date > start_date:
            raise ValidationError("end_date must be after start_date")

        if first_payment_date is not None and not (start_date <= first_payment_date <= end_date):
            raise ValidationError("first_payment_date must lie within the lease term")
