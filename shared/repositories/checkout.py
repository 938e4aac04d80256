from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.models.checkout import GatewayCheckout, CheckoutStatus
from .base import BaseRepository


class CheckoutRepository(BaseRepository[GatewayCheckout]):
    """Repository for gateway checkout requests."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, GatewayCheckout)

    async def get_by_id(self, checkout_id: str) -> Optional[GatewayCheckout]:
        """Get a checkout by gateway reference (overrides base to use checkout_id)."""
        stmt = select(self.model).where(self.model.checkout_id == checkout_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def mark_status(
        self,
        checkout_id: str,
        status: CheckoutStatus,
    ) -> Optional[GatewayCheckout]:
        """Set checkout status; unknown references are ignored."""
        checkout = await self.get_by_id(checkout_id)
        if checkout is None:
            return None
        checkout.status = status
        await self.session.flush()
        return checkout
