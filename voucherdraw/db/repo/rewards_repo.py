from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import exists, func, or_, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from voucherdraw.db.models.redemption_codes import RedemptionCode
from voucherdraw.db.models.rewards import Reward


def _drawable_clauses(now_utc: datetime) -> tuple[ColumnElement[bool], ...]:
    return (
        Reward.status == "ACTIVE",
        Reward.stock_remaining > 0,
        or_(Reward.valid_from.is_(None), Reward.valid_from <= now_utc),
        or_(Reward.valid_to.is_(None), Reward.valid_to >= now_utc),
    )


class RewardsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, reward_id: UUID) -> Reward | None:
        return await session.get(Reward, reward_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, reward_id: UUID) -> Reward | None:
        stmt = (
            select(Reward)
            .where(Reward.id == reward_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def set_local_lock_timeout(session: AsyncSession, *, lock_timeout_ms: int) -> None:
        await session.execute(
            text("SELECT set_config('lock_timeout', :value, true)"),
            {"value": f"{int(lock_timeout_ms)}ms"},
        )

    @staticmethod
    async def list_drawable(session: AsyncSession, *, now_utc: datetime) -> list[Reward]:
        stmt = (
            select(Reward)
            .where(*_drawable_clauses(now_utc))
            .order_by(Reward.weight.desc(), Reward.created_at.asc(), Reward.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def has_drawable(session: AsyncSession, *, now_utc: datetime) -> bool:
        stmt = select(exists().where(*_drawable_clauses(now_utc)))
        result = await session.execute(stmt)
        return bool(result.scalar_one())

    @staticmethod
    async def get_drawable_summary(session: AsyncSession, *, now_utc: datetime) -> tuple[int, int]:
        stmt = select(
            func.count(Reward.id),
            func.coalesce(func.sum(Reward.stock_remaining), 0),
        ).where(*_drawable_clauses(now_utc))
        drawable_rewards, stock_remaining_total = (await session.execute(stmt)).one()
        return int(drawable_rewards), int(stock_remaining_total)

    @staticmethod
    async def create(session: AsyncSession, *, reward: Reward) -> Reward:
        session.add(reward)
        await session.flush()
        return reward

    @staticmethod
    async def list_inventory_mismatches(session: AsyncSession) -> list[tuple[UUID, int, int]]:
        issued_total = (
            select(func.count(RedemptionCode.id))
            .where(
                RedemptionCode.reward_id == Reward.id,
                RedemptionCode.status.in_(("ISSUED", "REDEEMED")),
            )
            .correlate(Reward)
            .scalar_subquery()
        )
        consumed = Reward.stock_initial - Reward.stock_remaining
        stmt = (
            select(Reward.id, consumed, issued_total)
            .where(consumed != issued_total)
            .order_by(Reward.id.asc())
        )
        result = await session.execute(stmt)
        return [(reward_id, int(expected), int(actual)) for reward_id, expected, actual in result.all()]

    @staticmethod
    async def list_all(session: AsyncSession) -> list[Reward]:
        stmt = select(Reward).order_by(Reward.created_at.asc(), Reward.id.asc())
        result = await session.execute(stmt)
        return list(result.scalars().all())
