"""Reconciles M-Pesa gateway traffic with the lease payment ledger."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.directory import DirectoryClient, get_directory
from shared.exceptions import InvalidTransitionError, LeaseEngineError, NotFoundError, ValidationError
from shared.models.checkout import CheckoutStatus, GatewayCheckout
from shared.models.lease import LeaseAgreement, LeaseStatus
from shared.repositories.checkout import CheckoutRepository
from shared.repositories.lease import LeaseRepository
from services.ledger_service.domain.ledger_service import LedgerService
from .gateway_events import (
    C2B_CONFIRMATION,
    C2B_VALIDATION,
    C2BConfirmationEvent,
    C2BValidationEvent,
    StkCallbackEvent,
    UnparsedEvent,
    parse_gateway_event,
)
from .mpesa_gateway import MpesaGateway, PROVIDER_CODE

logger = logging.getLogger(__name__)


def accept(desc: str = "Accepted") -> dict:
    return {"ResultCode": 0, "ResultDesc": desc}


def reject(desc: str) -> dict:
    return {"ResultCode": 1, "ResultDesc": desc}


@dataclass
class ConfirmationOutcome:
    """What a confirmation callback did to the ledger."""

    status: str  # recorded, duplicate, failed, ignored
    payment_id: Optional[UUID] = None
    lease_id: Optional[UUID] = None
    reason: Optional[str] = None

    @property
    def ack(self) -> dict:
        return accept("Received")


class ReconciliationService:
    """Gateway adapter: initiate, validate and confirm M-Pesa payments."""

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[MpesaGateway] = None,
        directory: Optional[DirectoryClient] = None,
        ledger: Optional[LedgerService] = None,
    ):
        self.session = session
        self.gateway = gateway or MpesaGateway()
        self.directory = directory
        self.lease_repo = LeaseRepository(session)
        self.checkout_repo = CheckoutRepository(session)
        self.ledger = ledger or LedgerService(session, directory=directory)

    # ------------------------------------------------------------------ #
    # Initiate
    # ------------------------------------------------------------------ #

    async def initiate_payment(
        self,
        lease_id: UUID,
        amount: Decimal,
        phone: Optional[str] = None,
    ) -> GatewayCheckout:
        """
        Start an STK push for a lease. Nothing is written to the ledger
        until the gateway confirms.

        Raises:
            NotFoundError: Unknown lease
            InvalidTransitionError: Lease is not active
            ValidationError: Bad amount or no phone number
            GatewayError: Daraja rejected the request
        """
        amount = Decimal(str(amount))
        self._validate_amount(amount)

        lease = await self.lease_repo.get_by_id(lease_id)
        if lease is None:
            raise NotFoundError(f"Lease not found: {lease_id}")
        if LeaseStatus(lease.status) != LeaseStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Payments can only be initiated on active leases (lease is {LeaseStatus(lease.status).value})"
            )

        if not phone:
            directory = self.directory or get_directory()
            phone = (await directory.get_tenant(lease.tenant_id)).phone
        if not phone:
            raise ValidationError("No phone number to send the payment prompt to")

        result = await self.gateway.stk_push(
            amount=amount,
            phone=phone,
            account_reference=str(lease.id),
        )

        checkout = GatewayCheckout(
            checkout_id=result.checkout_id,
            provider=PROVIDER_CODE,
            lease_id=lease.id,
            tenant_id=lease.tenant_id,
            amount=amount,
            phone=phone,
            status=CheckoutStatus.PENDING,
        )
        try:
            await self.checkout_repo.create(checkout)
            await self.checkout_repo.commit()
        except Exception as e:
            logger.error(f"Failed to store checkout {result.checkout_id}: {e}")
            await self.checkout_repo.rollback()
            raise

        logger.info(
            f"Initiated STK push {result.checkout_id} for lease {lease_id}",
            extra={"lease_id": str(lease_id), "checkout_id": result.checkout_id},
        )
        return checkout

    # ------------------------------------------------------------------ #
    # Synchronous validation
    # ------------------------------------------------------------------ #

    async def validate_callback(self, payload: Any) -> dict:
        """Accept or reject a C2B validation request. Read-only."""
        event = parse_gateway_event(payload, expected=C2B_VALIDATION)
        if not isinstance(event, C2BValidationEvent):
            logger.warning(f"Rejecting unparseable C2B validation: {getattr(event, 'reason', event.kind)}")
            return reject("Malformed request")

        if event.trans_amount is None or event.trans_amount <= 0:
            return reject("Invalid amount")
        if not event.msisdn:
            return reject("Missing MSISDN")
        if event.trans_amount > settings.max_payment_amount:
            return reject("Amount exceeds limit")

        lease = await self._resolve_lease(event.bill_ref_number)
        if lease is None:
            logger.info(f"C2B validation for unknown account {event.bill_ref_number!r}")
            return reject("Unknown account")
        if LeaseStatus(lease.status) != LeaseStatus.ACTIVE:
            return reject("Lease not active")

        return accept()

    # ------------------------------------------------------------------ #
    # Asynchronous confirmation
    # ------------------------------------------------------------------ #

    async def confirm_callback(self, payload: Any, expected: Optional[str] = None) -> ConfirmationOutcome:
        """
        Apply a confirmation to the ledger. Never raises for payload or
        business problems; those are logged and reported as ``ignored``.
        """
        event = parse_gateway_event(payload, expected=expected)

        if isinstance(event, UnparsedEvent):
            logger.warning(f"Acknowledging unparsed gateway payload: {event.reason}")
            return ConfirmationOutcome(status="ignored", reason=event.reason)

        try:
            if isinstance(event, StkCallbackEvent):
                return await self._confirm_stk(event)
            if isinstance(event, C2BConfirmationEvent):
                return await self._confirm_c2b(event)
        except LeaseEngineError as e:
            logger.warning(f"Gateway confirmation not applied: {e.message}")
            return ConfirmationOutcome(status="ignored", reason=e.message)

        logger.warning(f"Acknowledging unexpected {event.kind} on confirmation endpoint")
        return ConfirmationOutcome(status="ignored", reason=f"unexpected {event.kind}")

    async def confirm_c2b_callback(self, payload: Any) -> ConfirmationOutcome:
        return await self.confirm_callback(payload, expected=C2B_CONFIRMATION)

    async def _confirm_stk(self, event: StkCallbackEvent) -> ConfirmationOutcome:
        checkout = await self.checkout_repo.get_by_id(event.checkout_request_id)
        checkout_id = event.checkout_request_id

        if not event.succeeded:
            if checkout is not None and checkout.status == CheckoutStatus.COMPLETED:
                logger.warning(
                    f"Late failure callback for completed checkout {checkout_id} ignored",
                    extra={"checkout_id": checkout_id, "result_code": event.result_code},
                )
                return ConfirmationOutcome(
                    status="ignored",
                    lease_id=checkout.lease_id,
                    reason="checkout already completed",
                )
            if checkout is not None:
                await self.checkout_repo.mark_status(checkout_id, CheckoutStatus.FAILED)
                await self.checkout_repo.commit()
            logger.info(
                f"STK push {checkout_id} failed: {event.result_desc}",
                extra={"checkout_id": checkout_id, "result_code": event.result_code},
            )
            return ConfirmationOutcome(status="failed", reason=event.result_desc)

        if checkout is not None:
            lease_id = checkout.lease_id
            fallback_amount = checkout.amount
        else:
            lease = await self._resolve_lease(event.account_reference)
            if lease is None:
                raise NotFoundError(f"No checkout or lease for STK callback {checkout_id}")
            lease_id = lease.id
            fallback_amount = None

        amount = event.amount or fallback_amount
        if amount is None:
            raise ValidationError(f"STK callback {checkout_id} carries no amount")

        payment, created = await self.ledger.append(
            lease_id=lease_id,
            amount=amount,
            paid_at=event.transaction_time,
            provider=PROVIDER_CODE,
            provider_transaction_id=event.receipt_number or checkout_id,
            metadata={"checkout_id": checkout_id, "phone": event.phone},
            dedup_key=event.dedup_key,
            source=PROVIDER_CODE,
        )
        payment_id = payment.id

        if checkout is not None:
            await self.checkout_repo.mark_status(checkout_id, CheckoutStatus.COMPLETED)
            await self.checkout_repo.commit()

        return ConfirmationOutcome(
            status="recorded" if created else "duplicate",
            payment_id=payment_id,
            lease_id=lease_id,
        )

    async def _confirm_c2b(self, event: C2BConfirmationEvent) -> ConfirmationOutcome:
        lease = await self._resolve_lease(event.bill_ref_number)
        if lease is None:
            raise NotFoundError(
                f"C2B confirmation {event.trans_id} references unknown account {event.bill_ref_number!r}"
            )
        if event.trans_amount is None:
            raise ValidationError(f"C2B confirmation {event.trans_id} carries no amount")
        lease_id = lease.id

        payment, created = await self.ledger.append(
            lease_id=lease_id,
            amount=event.trans_amount,
            paid_at=event.transaction_time,
            provider=PROVIDER_CODE,
            provider_transaction_id=event.trans_id,
            metadata={
                "msisdn": event.msisdn,
                "transaction_type": event.transaction_type,
                "short_code": event.business_short_code,
            },
            dedup_key=event.dedup_key,
            source=PROVIDER_CODE,
        )

        return ConfirmationOutcome(
            status="recorded" if created else "duplicate",
            payment_id=payment.id,
            lease_id=lease_id,
        )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    async def _resolve_lease(self, reference: Optional[str]) -> Optional[LeaseAgreement]:
        """Map a bill/account reference (the lease id) to a lease."""
        if not reference:
            return None
        try:
            lease_id = UUID(reference.strip())
        except ValueError:
            return None
        return await self.lease_repo.get_by_id(lease_id)

    @staticmethod
    def _validate_amount(amount: Decimal) -> None:
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        if amount > settings.max_payment_amount:
            raise ValidationError(f"Amount exceeds the {settings.max_payment_amount} limit")
