"""Event persistence to the lease audit trail."""

import logging
from typing import Optional
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession

from shared.events.schemas import BaseEvent
from shared.repositories.lease_event import LeaseEventRepository

logger = logging.getLogger(__name__)


class EventPersister:
    """Persists events to ``lease_events``.

    The entry is flushed into the caller's transaction, so the audit row
    commits or rolls back together with the state change it describes.
    """

    def __init__(self, db_session: AsyncSession):
        self.session = db_session
        self.repo = LeaseEventRepository(db_session)

    async def persist_event(self, event: BaseEvent) -> int:
        """
        Persist an event to the audit trail.

        Args:
            event: Event to persist

        Returns:
            Lease event entry ID
        """
        # Serialize event to dict with JSON-compatible types
        event_dict = event.model_dump(mode="json")

        amount: Optional[Decimal] = None
        if getattr(event, "amount", None) is not None:
            amount = Decimal(str(event.amount))

        entry = await self.repo.append_event(
            lease_id=event.lease_id,
            event_type=event.event_type,
            event_payload=event_dict,
            amount=amount,
        )

        logger.debug(
            f"Persisted {event.event_type} to lease events (entry_id={entry.id})",
            extra={"lease_id": str(event.lease_id)},
        )

        return entry.id
