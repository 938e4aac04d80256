"""Celery tasks driven by the beat schedule: expiry and reminders."""

import logging
from datetime import date
from typing import Optional

from shared.celery_app import celery_app, run_async
from shared.database import SessionLocal
from shared.exceptions import LeaseEngineError
from services.lease_service.domain.lease_service import LeaseService

logger = logging.getLogger(__name__)


def _parse_day(value: Optional[str]) -> date:
    return date.fromisoformat(value) if value else date.today()


async def expire_leases_async(as_of: date, session_factory=SessionLocal) -> list:
    async with session_factory() as session:
        expired = await LeaseService(session).expire_leases(as_of)
    return [str(lease_id) for lease_id in expired]


async def send_due_payment_reminders_async(
    today: date,
    session_factory=SessionLocal,
    service_factory=LeaseService,
) -> dict:
    """Remind tenants of active leases with a due date this month and no payment yet."""
    sent = skipped = failed = 0
    async with session_factory() as session:
        service = service_factory(session)
        leases = await service.find_leases_with_missing_payments(today)
        lease_ids = [lease.id for lease in leases]

        for lease_id in lease_ids:
            try:
                result = await service.send_due_payment_reminder(lease_id, today)
            except LeaseEngineError as e:
                failed += 1
                logger.warning(
                    f"Due reminder for lease {lease_id} failed: {e.message}",
                    extra={"lease_id": str(lease_id)},
                )
                continue
            if result["sent"]:
                sent += 1
            else:
                skipped += 1

    return {"checked": len(lease_ids), "sent": sent, "skipped": skipped, "failed": failed}


async def send_esignature_reminders_async(
    days_since_sent: int,
    session_factory=SessionLocal,
    service_factory=LeaseService,
) -> dict:
    queued = failed = 0
    async with session_factory() as session:
        service = service_factory(session)
        leases = await service.find_leases_needing_esignature_reminders(days_since_sent)

        for lease in leases:
            try:
                queued += await service.send_esignature_reminder(lease)
            except LeaseEngineError as e:
                failed += 1
                logger.warning(
                    f"E-signature reminder for lease {lease.id} failed: {e.message}",
                    extra={"lease_id": str(lease.id)},
                )

    return {"checked": len(leases), "queued": queued, "failed": failed}


@celery_app.task(name="lease.expire_leases")
def expire_leases(as_of: Optional[str] = None) -> dict:
    """Move active leases past their end date to expired."""
    day = _parse_day(as_of)
    expired = run_async(expire_leases_async(day))
    logger.info(f"Expiry run for {day}: {len(expired)} leases expired")
    return {"as_of": day.isoformat(), "expired": expired}


@celery_app.task(name="lease.send_due_payment_reminders")
def send_due_payment_reminders(today: Optional[str] = None) -> dict:
    day = _parse_day(today)
    summary = run_async(send_due_payment_reminders_async(day))
    logger.info(f"Due payment reminders for {day}: {summary}")
    return summary


@celery_app.task(name="lease.send_esignature_reminders")
def send_esignature_reminders(days_since_sent: int = 1) -> dict:
    summary = run_async(send_esignature_reminders_async(days_since_sent))
    logger.info(f"E-signature reminders: {summary}")
    return summary
