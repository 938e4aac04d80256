from .payment_tasks import prune_idempotency_records

__all__ = [
    "prune_idempotency_records",
]
