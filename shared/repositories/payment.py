from typing import Optional, List, Dict, Sequence
from uuid import UUID
from datetime import datetime
from decimal import Decimal
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.payment import LeasePayment
from .base import BaseRepository


class PaymentRepository(BaseRepository[LeasePayment]):
    """Repository for the append-only lease payment ledger."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, LeasePayment)

    async def get_by_lease_id(
        self,
        lease_id: UUID,
        paid_before: Optional[datetime] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[LeasePayment]:
        """Payments for a lease ordered by economic time."""
        stmt = select(self.model).where(self.model.lease_id == lease_id)
        if paid_before is not None:
            stmt = stmt.where(self.model.paid_at < paid_before)
        stmt = stmt.order_by(self.model.paid_at, self.model.created_at).offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_total_for_lease(
        self,
        lease_id: UUID,
        paid_before: Optional[datetime] = None,
    ) -> Decimal:
        """Sum of payments for a lease, optionally only those before a cutoff."""
        stmt = select(func.sum(self.model.amount)).where(
            self.model.lease_id == lease_id
        )
        if paid_before is not None:
            stmt = stmt.where(self.model.paid_at < paid_before)
        result = await self.session.execute(stmt)
        total = result.scalar()
        return Decimal(str(total)) if total is not None else Decimal("0")

    async def get_for_leases(
        self,
        lease_ids: Sequence[UUID],
        paid_from: Optional[datetime] = None,
        paid_before: Optional[datetime] = None,
    ) -> Dict[UUID, List[LeasePayment]]:
        """Payments for several leases in one query, grouped by lease."""
        grouped: Dict[UUID, List[LeasePayment]] = {lease_id: [] for lease_id in lease_ids}
        if not lease_ids:
            return grouped

        stmt = select(self.model).where(self.model.lease_id.in_(list(lease_ids)))
        if paid_from is not None:
            stmt = stmt.where(self.model.paid_at >= paid_from)
        if paid_before is not None:
            stmt = stmt.where(self.model.paid_at < paid_before)
        stmt = stmt.order_by(self.model.paid_at, self.model.created_at)

        result = await self.session.execute(stmt)
        for payment in result.scalars().all():
            grouped.setdefault(payment.lease_id, []).append(payment)
        return grouped

    async def count_for_lease(self, lease_id: UUID) -> int:
        """Count payments for a lease."""
        stmt = select(func.count(self.model.id)).where(
            self.model.lease_id == lease_id
        )
        result = await self.session.execute(stmt)
        return result.scalar() or 0

    async def delete(self, id: UUID) -> bool:
        """Override delete to prevent deletion from the append-only ledger."""
        raise NotImplementedError(
            "Cannot delete a lease payment. Append a compensating entry instead."
        )

    async def update(self, id: UUID, **kwargs) -> Optional[LeasePayment]:
        """Override update to prevent updates to the append-only ledger."""
        raise NotImplementedError(
            "Cannot update a lease payment. Append a compensating entry instead."
        )
