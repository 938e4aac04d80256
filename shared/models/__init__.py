from .lease import (
    LeaseAgreement,
    LeaseStatus,
    LeaseType,
    LeaseChargeType,
    PaymentFrequency,
    EsignatureStatus,
)
from .payment_type import LeasePaymentType
from .payment import LeasePayment
from .idempotency import PaymentIdempotencyRecord
from .checkout import GatewayCheckout, CheckoutStatus
from .lease_event import LeaseEvent, LeaseEventType

__all__ = [
    "LeaseAgreement",
    "LeaseStatus",
    "LeaseType",
    "LeaseChargeType",
    "PaymentFrequency",
    "EsignatureStatus",
    "LeasePaymentType",
    "LeasePayment",
    "PaymentIdempotencyRecord",
    "GatewayCheckout",
    "CheckoutStatus",
    "LeaseEvent",
    "LeaseEventType",
]
