from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from voucherdraw.core.config import get_settings
from voucherdraw.db.models.rewards import Reward
from voucherdraw.db.models.stock_adjustments import StockAdjustment
from voucherdraw.db.repo.redemption_codes_repo import RedemptionCodesRepo
from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.db.repo.stock_adjustments_repo import StockAdjustmentsRepo
from voucherdraw.draw.codes import MAX_CODE_LENGTH, generate_raw_codes, normalize_redemption_code
from voucherdraw.draw.constants import CODE_STATUS_AVAILABLE
from voucherdraw.draw.errors import RewardNotFoundError, StockAdjustmentInvalidError
from voucherdraw.draw.types import StockAdjustmentResult

logger = structlog.get_logger(__name__)
MAX_PROVISION_ROUNDS = 5


async def provision_auto_codes(
    session: AsyncSession,
    *,
    reward: Reward,
    count: int,
    now_utc: datetime,
    token_length: int | None = None,
) -> int:
    token_length = token_length or get_settings().reward_code_token_length
    try:
        codes = generate_raw_codes(count=count, token_length=token_length, prefix=reward.code_prefix)
        for _ in range(MAX_PROVISION_ROUNDS):
            taken = await RedemptionCodesRepo.find_existing_codes(session, codes=codes)
            if not taken:
                break
            kept = [code for code in codes if code not in taken]
            replacements = generate_raw_codes(
                count=len(taken),
                token_length=token_length,
                prefix=reward.code_prefix,
                existing_codes=set(codes) | taken,
            )
            codes = kept + replacements
        else:
            raise StockAdjustmentInvalidError("unable to provision unique redemption codes")
    except RuntimeError as exc:
        # generate_raw_codes gave up inside a single batch
        raise StockAdjustmentInvalidError("unable to provision unique redemption codes") from exc

    return await RedemptionCodesRepo.create_available(
        session,
        reward_id=reward.id,
        codes=codes,
        now_utc=now_utc,
    )


async def _lock_reward_or_raise(session: AsyncSession, reward_id: UUID) -> Reward:
    reward = await RewardsRepo.get_by_id_for_update(session, reward_id)
    if reward is None:
        raise RewardNotFoundError
    return reward


def _apply_stock_delta(reward: Reward, *, delta: int, now_utc: datetime) -> None:
    # stock_initial tracks every unit ever provisioned, so
    # issued + redeemed codes == stock_initial - stock_remaining keeps holding
    reward.stock_remaining += delta
    reward.stock_initial += delta
    reward.updated_at = now_utc


async def _record_adjustment(
    session: AsyncSession,
    *,
    reward: Reward,
    delta: int,
    previous_stock: int,
    reason: str,
    created_by: str,
    codes_provisioned: int,
    now_utc: datetime,
) -> StockAdjustmentResult:
    adjustment = await StockAdjustmentsRepo.create(
        session,
        adjustment=StockAdjustment(
            reward_id=reward.id,
            delta=delta,
            reason=reason,
            previous_stock=previous_stock,
            new_stock=reward.stock_remaining,
            codes_provisioned=codes_provisioned,
            created_by=created_by,
            created_at=now_utc,
        ),
    )
    logger.info(
        "reward_stock_adjusted",
        reward_id=str(reward.id),
        delta=delta,
        previous_stock=previous_stock,
        new_stock=reward.stock_remaining,
        codes_provisioned=codes_provisioned,
        created_by=created_by,
    )
    return StockAdjustmentResult(
        adjustment_id=adjustment.id,
        reward_id=reward.id,
        previous_stock=previous_stock,
        new_stock=reward.stock_remaining,
        delta=delta,
        codes_provisioned=codes_provisioned,
    )


async def adjust_stock(
    session: AsyncSession,
    *,
    reward_id: UUID,
    delta: int,
    reason: str,
    created_by: str,
    now_utc: datetime | None = None,
) -> StockAdjustmentResult:
    now_utc = now_utc or datetime.now(timezone.utc)
    reason = reason.strip()
    if delta == 0:
        raise StockAdjustmentInvalidError("delta must be non-zero")
    if not reason:
        raise StockAdjustmentInvalidError("reason is required")

    # Same row lock as draw allocation: both writers serialize on the reward row.
    reward = await _lock_reward_or_raise(session, reward_id)
    previous_stock = reward.stock_remaining
    new_stock = previous_stock + delta
    if new_stock < 0:
        raise StockAdjustmentInvalidError("stock cannot become negative")

    codes_provisioned = 0
    if delta > 0:
        if reward.code_generation == "AUTO":
            codes_provisioned = await provision_auto_codes(
                session,
                reward=reward,
                count=delta,
                now_utc=now_utc,
            )
        else:
            code_counts = await RedemptionCodesRepo.count_by_status(session, reward_id=reward.id)
            if code_counts.get(CODE_STATUS_AVAILABLE, 0) < new_stock:
                raise StockAdjustmentInvalidError("not enough pre-seeded codes to back the new stock")

    _apply_stock_delta(reward, delta=delta, now_utc=now_utc)
    return await _record_adjustment(
        session,
        reward=reward,
        delta=delta,
        previous_stock=previous_stock,
        reason=reason,
        created_by=created_by,
        codes_provisioned=codes_provisioned,
        now_utc=now_utc,
    )


def _normalize_import_batch(raw_codes: Iterable[str]) -> list[str]:
    batch: list[str] = []
    seen: set[str] = set()
    for raw_code in raw_codes:
        code = normalize_redemption_code(raw_code)
        if not code:
            continue
        if len(code) > MAX_CODE_LENGTH:
            raise StockAdjustmentInvalidError(f"code is too long: {raw_code}")
        if code in seen:
            raise StockAdjustmentInvalidError(f"duplicate code in batch: {raw_code}")
        seen.add(code)
        batch.append(code)
    return batch


async def import_pre_seeded_codes(
    session: AsyncSession,
    *,
    reward_id: UUID,
    raw_codes: Iterable[str],
    reason: str,
    created_by: str,
    now_utc: datetime | None = None,
) -> StockAdjustmentResult:
    now_utc = now_utc or datetime.now(timezone.utc)
    reason = reason.strip()
    if not reason:
        raise StockAdjustmentInvalidError("reason is required")

    codes = _normalize_import_batch(raw_codes)
    if not codes:
        raise StockAdjustmentInvalidError("no codes to import")

    reward = await _lock_reward_or_raise(session, reward_id)
    if reward.code_generation != "PRE_SEEDED":
        raise StockAdjustmentInvalidError("reward generates its own codes")

    taken = await RedemptionCodesRepo.find_existing_codes(session, codes=codes)
    if taken:
        raise StockAdjustmentInvalidError(f"codes already exist: {', '.join(sorted(taken)[:5])}")

    previous_stock = reward.stock_remaining
    inserted = await RedemptionCodesRepo.create_available(
        session,
        reward_id=reward.id,
        codes=codes,
        now_utc=now_utc,
    )
    _apply_stock_delta(reward, delta=inserted, now_utc=now_utc)
    return await _record_adjustment(
        session,
        reward=reward,
        delta=inserted,
        previous_stock=previous_stock,
        reason=reason,
        created_by=created_by,
        codes_provisioned=inserted,
        now_utc=now_utc,
    )
