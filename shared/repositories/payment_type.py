from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.payment_type import LeasePaymentType, DEFAULT_PAYMENT_TYPES
from .base import BaseRepository


class LeasePaymentTypeRepository(BaseRepository[LeasePaymentType]):
    """Repository for the payment-type catalog."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, LeasePaymentType)

    async def get_by_code(
        self,
        code: str,
        organization_id: Optional[str] = None,
    ) -> Optional[LeasePaymentType]:
        """Resolve a code, preferring the organization's own entry over the system default."""
        code = code.upper()
        if organization_id:
            stmt = select(self.model).where(
                (self.model.code == code)
                & (self.model.organization_id == organization_id)
            )
            result = await self.session.execute(stmt)
            found = result.scalars().first()
            if found is not None:
                return found

        stmt = select(self.model).where(
            (self.model.code == code) & self.model.organization_id.is_(None)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def seed_defaults(self) -> int:
        """Insert any missing system-default payment types. Returns count inserted."""
        created = 0
        for code, name, description in DEFAULT_PAYMENT_TYPES:
            if await self.get_by_code(code) is not None:
                continue
            await self.create(
                LeasePaymentType(code=code, name=name, description=description)
            )
            created += 1
        return created
