from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from voucherdraw.db.repo.participation_attempts_repo import ParticipationAttemptsRepo
from voucherdraw.db.repo.redemption_codes_repo import RedemptionCodesRepo
from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.draw.constants import (
    CODE_STATUS_AVAILABLE,
    CODE_STATUS_ISSUED,
    CODE_STATUS_REDEEMED,
)
from voucherdraw.draw.types import DrawStatistics, RewardDrawStats


def _win_rate_percent(*, wins: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(wins * 100.0 / total, 2)


async def get_draw_statistics(
    session: AsyncSession,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> DrawStatistics:
    overview = await ParticipationAttemptsRepo.get_overview(
        session,
        date_from=date_from,
        date_to=date_to,
    )
    wins_by_reward = await ParticipationAttemptsRepo.count_wins_by_reward(
        session,
        date_from=date_from,
        date_to=date_to,
    )
    code_counts = await RedemptionCodesRepo.count_by_reward_and_status(session)
    rewards = await RewardsRepo.list_all(session)

    # code counts are current inventory; only wins honour the date range
    reward_stats = [
        RewardDrawStats(
            reward_id=reward.id,
            name=reward.name,
            face_value=reward.face_value,
            stock_initial=reward.stock_initial,
            stock_remaining=reward.stock_remaining,
            times_won=wins_by_reward.get(reward.id, 0),
            codes_issued=code_counts.get((reward.id, CODE_STATUS_ISSUED), 0),
            codes_redeemed=code_counts.get((reward.id, CODE_STATUS_REDEEMED), 0),
            codes_available=code_counts.get((reward.id, CODE_STATUS_AVAILABLE), 0),
        )
        for reward in rewards
    ]
    reward_stats.sort(key=lambda item: (-item.times_won, item.name))

    return DrawStatistics(
        total_attempts=overview["total_attempts"],
        unique_participants=overview["unique_participants"],
        unique_devices=overview["unique_devices"],
        total_wins=overview["total_wins"],
        win_rate_percent=_win_rate_percent(
            wins=overview["total_wins"],
            total=overview["total_attempts"],
        ),
        rewards=reward_stats,
    )
