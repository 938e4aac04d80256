from .lease_tasks import (
    expire_leases,
    send_due_payment_reminders,
    send_esignature_reminders,
)

__all__ = [
    "expire_leases",
    "send_due_payment_reminders",
    "send_esignature_reminders",
]
