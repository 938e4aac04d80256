from typing import Optional, List
from uuid import UUID
from decimal import Decimal
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.lease_event import LeaseEvent
from .base import BaseRepository


class LeaseEventRepository(BaseRepository[LeaseEvent]):
    """Repository for the append-only lease audit trail."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, LeaseEvent)

    async def append_event(
        self,
        lease_id: UUID,
        event_type: str,
        event_payload: dict,
        amount: Optional[Decimal] = None
    ) -> LeaseEvent:
        """Append an event to the audit trail (insert-only)."""
        entry = LeaseEvent(
            lease_id=lease_id,
            event_type=event_type,
            event_payload=event_payload,
            amount=amount,
        )
        return await self.create(entry)

    async def get_lease_history(
        self,
        lease_id: UUID,
        skip: int = 0,
        limit: int = 100
    ) -> List[LeaseEvent]:
        """Get all events for a lease in chronological order."""
        stmt = (
            select(self.model)
            .where(self.model.lease_id == lease_id)
            .order_by(self.model.id)
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_lease_history_by_event_type(
        self,
        lease_id: UUID,
        event_type: str,
        skip: int = 0,
        limit: int = 100,
    ) -> List[LeaseEvent]:
        """Get events for a lease filtered by event type."""
        stmt = (
            select(self.model)
            .where(
                (self.model.lease_id == lease_id)
                & (self.model.event_type == event_type)
            )
            .order_by(self.model.id)
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_events_for_lease(self, lease_id: UUID) -> int:
        """Count total events for a lease."""
        stmt = select(func.count(self.model.id)).where(
            self.model.lease_id == lease_id
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def delete(self, id: int) -> bool:
        """Override delete to prevent deletion from the audit trail."""
        raise NotImplementedError(
            "Cannot delete from append-only lease event log."
        )

    async def update(self, id: int, **kwargs) -> Optional[LeaseEvent]:
        """Override update to prevent updates to the audit trail."""
        raise NotImplementedError(
            "Cannot update append-only lease event log."
        )
