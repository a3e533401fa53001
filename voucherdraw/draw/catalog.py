from __future__ import annotations

import math
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from voucherdraw.db.models.rewards import Reward
from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.draw.types import CatalogEntry, CatalogStatus, RewardSummary


def as_draw_weight(value: object) -> float:
    try:
        weight = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(weight) or weight < 0:
        return 0.0
    return weight


def is_reward_drawable(reward: Reward, *, now_utc: datetime) -> bool:
    if reward.status != "ACTIVE" or reward.stock_remaining <= 0:
        return False
    if reward.valid_from is not None and reward.valid_from > now_utc:
        return False
    if reward.valid_to is not None and reward.valid_to < now_utc:
        return False
    return True


def as_catalog_entry(reward: Reward) -> CatalogEntry:
    return CatalogEntry(
        reward_id=reward.id,
        name=reward.name,
        weight=as_draw_weight(reward.weight),
        stock_remaining=reward.stock_remaining,
    )


def as_reward_summary(reward: Reward) -> RewardSummary:
    return RewardSummary(
        id=reward.id,
        name=reward.name,
        face_value=reward.face_value,
        category=reward.category,
    )


async def load_catalog(session: AsyncSession, *, now_utc: datetime) -> list[CatalogEntry]:
    rewards = await RewardsRepo.list_drawable(session, now_utc=now_utc)
    return [as_catalog_entry(reward) for reward in rewards]


async def get_catalog_status(session: AsyncSession, *, now_utc: datetime) -> CatalogStatus:
    drawable_rewards, stock_remaining_total = await RewardsRepo.get_drawable_summary(
        session,
        now_utc=now_utc,
    )
    return CatalogStatus(
        drawable_rewards=drawable_rewards,
        stock_remaining_total=stock_remaining_total,
    )
