from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from voucherdraw.db.models.participation_attempts import ParticipationAttempt
from voucherdraw.db.models.rewards import Reward
from voucherdraw.db.repo.participation_attempts_repo import ParticipationAttemptsRepo
from voucherdraw.db.repo.redemption_codes_repo import RedemptionCodesRepo
from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.draw.catalog import as_reward_summary, is_reward_drawable
from voucherdraw.draw.constants import (
    ATTEMPT_OUTCOME_WIN,
    CODE_STATUS_ISSUED,
    LOCK_NOT_AVAILABLE_SQLSTATE,
    LOSS_CODE_INVENTORY_EMPTY,
    LOSS_STOCK_RACE,
)
from voucherdraw.draw.errors import AllocationRaceError, DrawStoreUnavailableError
from voucherdraw.draw.types import AllocationResult, RequestMeta

logger = structlog.get_logger(__name__)


def is_lock_timeout_error(exc: BaseException) -> bool:
    orig = getattr(exc, "orig", None)
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is not None and getattr(candidate, "sqlstate", None) == LOCK_NOT_AVAILABLE_SQLSTATE:
            return True
    return False


async def _lock_reward(
    session: AsyncSession,
    *,
    reward_id: UUID,
    lock_timeout_ms: int,
) -> Reward | None:
    try:
        await RewardsRepo.set_local_lock_timeout(session, lock_timeout_ms=lock_timeout_ms)
        return await RewardsRepo.get_by_id_for_update(session, reward_id)
    except DBAPIError as exc:
        if is_lock_timeout_error(exc):
            raise
        raise DrawStoreUnavailableError from exc


async def allocate(
    session: AsyncSession,
    *,
    reward_id: UUID,
    participant_id: str,
    device_id: str,
    request_meta: RequestMeta,
    attempt_id: UUID,
    now_utc: datetime,
    lock_timeout_ms: int,
) -> AllocationResult:
    """Reserve one unit of the candidate reward and issue one code to the participant.

    Must run inside a transaction owned by the caller: the stock decrement, the
    code transition and the WIN attempt insert only become visible when that
    transaction commits, and vanish together if it rolls back.

    Raises ``AllocationRaceError`` when the reward was drained or withdrawn
    after selection, or when its code inventory is empty. Raises
    ``DrawStoreUnavailableError`` when the store fails before the reward row
    is locked. A lock timeout propagates unchanged as ``DBAPIError``.
    """
    reward = await _lock_reward(session, reward_id=reward_id, lock_timeout_ms=lock_timeout_ms)
    if reward is None or not is_reward_drawable(reward, now_utc=now_utc):
        logger.info(
            "draw_allocation_race",
            reward_id=str(reward_id),
            stock_remaining=(reward.stock_remaining if reward is not None else None),
        )
        raise AllocationRaceError(LOSS_STOCK_RACE)

    code = await RedemptionCodesRepo.get_next_available_for_update(session, reward_id=reward.id)
    if code is None:
        logger.error(
            "draw_code_inventory_inconsistent",
            reward_id=str(reward.id),
            stock_remaining=reward.stock_remaining,
        )
        raise AllocationRaceError(LOSS_CODE_INVENTORY_EMPTY)

    reward.stock_remaining -= 1
    reward.updated_at = now_utc
    code.status = CODE_STATUS_ISSUED
    code.issued_to_participant_id = participant_id
    code.issued_at = now_utc

    await ParticipationAttemptsRepo.create(
        session,
        attempt=ParticipationAttempt(
            id=attempt_id,
            participant_id=participant_id,
            device_id=device_id,
            outcome=ATTEMPT_OUTCOME_WIN,
            reward_id=reward.id,
            redemption_code_id=code.id,
            ip_address=request_meta.ip_address,
            user_agent=request_meta.user_agent,
            metadata_={},
            created_at=now_utc,
        ),
    )
    return AllocationResult.win(
        attempt_id=attempt_id,
        reward=as_reward_summary(reward),
        code=code.code,
    )
