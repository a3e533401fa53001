from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from voucherdraw.db.models.stock_adjustments import StockAdjustment


class StockAdjustmentsRepo:
    @staticmethod
    async def create(session: AsyncSession, *, adjustment: StockAdjustment) -> StockAdjustment:
        session.add(adjustment)
        await session.flush()
        return adjustment
