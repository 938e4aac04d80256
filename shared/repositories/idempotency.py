from typing import Optional
from uuid import UUID
from datetime import datetime, timedelta
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.idempotency import PaymentIdempotencyRecord
from .base import BaseRepository


class IdempotencyRepository(BaseRepository[PaymentIdempotencyRecord]):
    """Repository for payment dedup records keyed by gateway transaction id."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, PaymentIdempotencyRecord)

    async def get_by_id(self, dedup_key: str) -> Optional[PaymentIdempotencyRecord]:
        """Get a dedup record by key (overrides base to use the dedup_key column)."""
        stmt = select(self.model).where(self.model.dedup_key == dedup_key)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def store(
        self,
        dedup_key: str,
        payment_id: UUID,
        lease_id: UUID,
        source: str,
        retention_days: int = 30,
    ) -> PaymentIdempotencyRecord:
        """Insert a dedup record; raises IntegrityError on a duplicate key at flush."""
        now = datetime.utcnow()
        record = PaymentIdempotencyRecord(
            dedup_key=dedup_key,
            payment_id=payment_id,
            lease_id=lease_id,
            source=source,
            created_at=now,
            expires_at=now + timedelta(days=retention_days),
        )
        return await self.create(record)

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Delete all expired dedup records. Returns count deleted."""
        stmt = delete(self.model).where(
            self.model.expires_at <= (now or datetime.utcnow())
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount

    async def update(self, dedup_key: str, **kwargs) -> Optional[PaymentIdempotencyRecord]:
        """Dedup records are never updated."""
        raise NotImplementedError("Idempotency records are immutable.")

    async def delete(self, dedup_key: str) -> bool:
        """Delete a dedup record."""
        stmt = delete(self.model).where(self.model.dedup_key == dedup_key)
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0
