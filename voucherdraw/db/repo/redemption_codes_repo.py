from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from voucherdraw.db.models.redemption_codes import RedemptionCode

LOOKUP_CHUNK_SIZE = 1000


class RedemptionCodesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, code_id: int) -> RedemptionCode | None:
        return await session.get(RedemptionCode, code_id)

    @staticmethod
    async def get_by_code_for_update(session: AsyncSession, code: str) -> RedemptionCode | None:
        stmt = select(RedemptionCode).where(RedemptionCode.code == code).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_next_available_for_update(
        session: AsyncSession,
        *,
        reward_id: UUID,
    ) -> RedemptionCode | None:
        stmt = (
            select(RedemptionCode)
            .where(
                RedemptionCode.reward_id == reward_id,
                RedemptionCode.status == "AVAILABLE",
            )
            .order_by(RedemptionCode.created_at.asc(), RedemptionCode.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def find_existing_codes(session: AsyncSession, *, codes: Iterable[str]) -> set[str]:
        values = tuple(codes)
        found: set[str] = set()
        for offset in range(0, len(values), LOOKUP_CHUNK_SIZE):
            chunk = values[offset : offset + LOOKUP_CHUNK_SIZE]
            stmt = select(RedemptionCode.code).where(RedemptionCode.code.in_(chunk))
            result = await session.execute(stmt)
            found.update(result.scalars().all())
        return found

    @staticmethod
    async def create_available(
        session: AsyncSession,
        *,
        reward_id: UUID,
        codes: list[str],
        now_utc: datetime,
    ) -> int:
        if not codes:
            return 0
        await session.execute(
            insert(RedemptionCode),
            [
                {
                    "reward_id": reward_id,
                    "code": code,
                    "status": "AVAILABLE",
                    "issued_to_participant_id": None,
                    "issued_at": None,
                    "redeemed_at": None,
                    "created_at": now_utc,
                }
                for code in codes
            ],
        )
        return len(codes)

    @staticmethod
    async def count_by_status(session: AsyncSession, *, reward_id: UUID) -> dict[str, int]:
        stmt = (
            select(RedemptionCode.status, func.count(RedemptionCode.id))
            .where(RedemptionCode.reward_id == reward_id)
            .group_by(RedemptionCode.status)
        )
        result = await session.execute(stmt)
        return {str(status): int(count) for status, count in result.all()}

    @staticmethod
    async def count_by_reward_and_status(session: AsyncSession) -> dict[tuple[UUID, str], int]:
        stmt = select(
            RedemptionCode.reward_id,
            RedemptionCode.status,
            func.count(RedemptionCode.id),
        ).group_by(RedemptionCode.reward_id, RedemptionCode.status)
        result = await session.execute(stmt)
        return {(reward_id, str(status)): int(count) for reward_id, status, count in result.all()}
