from .schemas import (
    BaseEvent,
    LeaseCreatedEvent,
    LeaseActivatedEvent,
    LeaseExtendedEvent,
    LeaseTerminatedEvent,
    LeaseExpiredEvent,
    LeaseSuspendedEvent,
    LeaseResumedEvent,
    LeaseDeletedEvent,
    EsignatureUpdatedEvent,
    PaymentRecordedEvent,
)

__all__ = [
    "BaseEvent",
    "LeaseCreatedEvent",
    "LeaseActivatedEvent",
    "LeaseExtendedEvent",
    "LeaseTerminatedEvent",
    "LeaseExpiredEvent",
    "LeaseSuspendedEvent",
    "LeaseResumedEvent",
    "LeaseDeletedEvent",
    "EsignatureUpdatedEvent",
    "PaymentRecordedEvent",
]
