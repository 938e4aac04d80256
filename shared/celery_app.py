"""Celery application shared by every service's background tasks."""

from celery import Celery
from celery.schedules import crontab

from shared.config import settings

celery_app = Celery(
    "lease_engine",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# Scheduled triggers (the engine has no internal timers of its own)
celery_app.conf.beat_schedule = {
    "expire-leases-daily": {
        "task": "lease.expire_leases",
        "schedule": crontab(hour=0, minute=15),
    },
    "send-due-payment-reminders-daily": {
        "task": "lease.send_due_payment_reminders",
        "schedule": crontab(hour=7, minute=0),
    },
    "send-esignature-reminders-daily": {
        "task": "lease.send_esignature_reminders",
        "schedule": crontab(hour=9, minute=0),
    },
    "prune-idempotency-records-daily": {
        "task": "payment.prune_idempotency_records",
        "schedule": crontab(hour=3, minute=30),
    },
}

celery_app.conf.include = [
    "shared.notifications",
    "services.lease_service.tasks.lease_tasks",
    "services.payment_service.tasks.payment_tasks",
]


def run_async(coro):
    """Run a coroutine from a synchronous Celery task.

    Each task gets its own event loop, so pooled database connections are
    disposed before the loop closes.
    """
    import asyncio

    from shared.database import engine

    async def _run():
        try:
            return await coro
        finally:
            await engine.dispose()

    return asyncio.run(_run())
