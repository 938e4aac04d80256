"""Celery tasks for payment housekeeping."""

import logging
from datetime import datetime

from shared.celery_app import celery_app, run_async
from shared.database import SessionLocal
from shared.repositories.idempotency import IdempotencyRepository

logger = logging.getLogger(__name__)


async def prune_idempotency_records_async(now: datetime, session_factory=SessionLocal) -> int:
    async with session_factory() as session:
        repo = IdempotencyRepository(session)
        try:
            removed = await repo.cleanup_expired(now)
            await repo.commit()
        except Exception as e:
            logger.error(f"Failed to prune idempotency records: {e}")
            await repo.rollback()
            raise
    return removed


@celery_app.task(
    name="payment.prune_idempotency_records",
    autoretry_for=(Exception,),
    retry_kwargs={"max_retries": 1},
    retry_backoff=True,
)
def prune_idempotency_records() -> dict:
    """Delete dedup records past their retention window."""
    removed = run_async(prune_idempotency_records_async(datetime.utcnow()))
    logger.info(f"Pruned {removed} expired idempotency records")
    return {"removed": removed}
