from .lease import LeaseRepository
from .payment import PaymentRepository
from .payment_type import LeasePaymentTypeRepository
from .idempotency import IdempotencyRepository
from .checkout import CheckoutRepository
from .lease_event import LeaseEventRepository

__all__ = [
    "LeaseRepository",
    "PaymentRepository",
    "LeasePaymentTypeRepository",
    "IdempotencyRepository",
    "CheckoutRepository",
    "LeaseEventRepository",
]
