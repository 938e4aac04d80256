from typing import Optional, List
from uuid import UUID
from datetime import date, datetime
from sqlalchemy import select, exists, and_, func
from sqlalchemy.ext.asyncio import AsyncSession

from shared.database.session import is_postgresql
from shared.models.lease import LeaseAgreement, LeaseStatus, OCCUPYING_STATUSES
from shared.models.payment import LeasePayment
from .base import BaseRepository


class LeaseRepository(BaseRepository[LeaseAgreement]):
    """Repository for lease agreements.

    Every query excludes soft-deleted rows unless ``include_deleted`` is set.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(session, LeaseAgreement)

    def _live(self):
        return self.model.deleted_at.is_(None)

    async def get_by_id(
        self,
        lease_id: UUID,
        include_deleted: bool = False,
        for_update: bool = False,
    ) -> Optional[LeaseAgreement]:
        """Get a lease by ID, optionally locking the row for the transaction."""
        stmt = select(self.model).where(self.model.id == lease_id)
        if not include_deleted:
            stmt = stmt.where(self._live())
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def _list_by(self, column, value, skip: int, limit: int) -> List[LeaseAgreement]:
        stmt = (
            select(self.model)
            .where((column == value) & self._live())
            .order_by(self.model.start_date.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_tenant_id(
        self,
        tenant_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[LeaseAgreement]:
        """Get all leases for a tenant."""
        return await self._list_by(self.model.tenant_id, tenant_id, skip, limit)

    async def get_by_landlord_id(
        self,
        landlord_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[LeaseAgreement]:
        """Get all leases for a landlord."""
        return await self._list_by(self.model.landlord_id, landlord_id, skip, limit)

    async def get_by_unit_id(
        self,
        unit_id: str,
        skip: int = 0,
        limit: int = 100
    ) -> List[LeaseAgreement]:
        """Get all leases for a unit."""
        return await self._list_by(self.model.unit_id, unit_id, skip, limit)

    async def lock_unit(self, unit_id: str) -> None:
        """
        Serialize overlap check and write on one unit until the transaction ends.

        Takes a transaction-scoped advisory lock on PostgreSQL. SQLite already
        serializes writers.
        """
        if is_postgresql(self.session):
            await self.session.execute(
                select(func.pg_advisory_xact_lock(func.hashtext(unit_id)))
            )

    async def find_overlapping(
        self,
        unit_id: str,
        start_date: date,
        end_date: date,
        exclude_id: Optional[UUID] = None,
    ) -> List[LeaseAgreement]:
        """Leases occupying the unit whose [start, end) intersects the given range."""
        stmt = select(self.model).where(
            (self.model.unit_id == unit_id)
            & self._live()
            & self.model.status.in_(OCCUPYING_STATUSES)
            & (self.model.start_date < end_date)
            & (self.model.end_date > start_date)
        )
        if exclude_id is not None:
            stmt = stmt.where(self.model.id != exclude_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_expirable(self, as_of: date) -> List[LeaseAgreement]:
        """Active leases whose end date has passed."""
        stmt = (
            select(self.model)
            .where(
                (self.model.status == LeaseStatus.ACTIVE)
                & self._live()
                & (self.model.end_date < as_of)
            )
            .order_by(self.model.end_date)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_billable_for_property(
        self,
        property_id: str,
        period_start: date,
        period_end: date,
    ) -> List[LeaseAgreement]:
        """Non-pending leases of a property whose term intersects [period_start, period_end]."""
        stmt = (
            select(self.model)
            .where(
                (self.model.property_id == property_id)
                & self._live()
                & (self.model.status != LeaseStatus.PENDING)
                & (self.model.start_date <= period_end)
                & (self.model.end_date >= period_start)
            )
            .order_by(self.model.unit_id, self.model.start_date)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_pending_signature_since(self, created_before: datetime) -> List[LeaseAgreement]:
        """Pending leases created before the cutoff that carry e-signature parties."""
        stmt = (
            select(self.model)
            .where(
                (self.model.status == LeaseStatus.PENDING)
                & self._live()
                & (self.model.created_at < created_before)
                & self.model.esignatures.is_not(None)
            )
            .order_by(self.model.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_active_without_payment_between(
        self,
        as_of: date,
        paid_from: datetime,
        paid_before: datetime,
    ) -> List[LeaseAgreement]:
        """Active leases covering as_of with no payment in [paid_from, paid_before)."""
        paid = exists().where(
            and_(
                LeasePayment.lease_id == self.model.id,
                LeasePayment.paid_at >= paid_from,
                LeasePayment.paid_at < paid_before,
            )
        )
        stmt = (
            select(self.model)
            .where(
                (self.model.status == LeaseStatus.ACTIVE)
                & self._live()
                & (self.model.start_date <= as_of)
                & (self.model.end_date >= as_of)
                & ~paid
            )
            .order_by(self.model.unit_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_active_ending_between(self, start: date, end: date) -> List[LeaseAgreement]:
        """Active leases whose end date falls in [start, end]."""
        stmt = (
            select(self.model)
            .where(
                (self.model.status == LeaseStatus.ACTIVE)
                & self._live()
                & (self.model.end_date >= start)
                & (self.model.end_date <= end)
            )
            .order_by(self.model.end_date)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def soft_delete(self, lease: LeaseAgreement) -> LeaseAgreement:
        """Mark a lease deleted; rows are never physically removed."""
        lease.deleted_at = datetime.utcnow()
        await self.session.flush()
        return lease

    async def delete(self, id: UUID) -> bool:
        """Leases are soft-deleted only."""
        raise NotImplementedError(
            "Leases are never physically deleted. Use soft_delete()."
        )

