from __future__ import annotations

from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from voucherdraw.db.models.participation_attempts import ParticipationAttempt
from voucherdraw.db.repo.participation_attempts_repo import ParticipationAttemptsRepo
from voucherdraw.db.repo.redemption_codes_repo import RedemptionCodesRepo
from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.draw.catalog import as_reward_summary
from voucherdraw.draw.constants import ATTEMPT_OUTCOME_LOSE, ATTEMPT_OUTCOME_WIN
from voucherdraw.draw.errors import AlreadyParticipatedError, DrawStoreUnavailableError
from voucherdraw.draw.types import AllocationResult, RequestMeta

logger = structlog.get_logger(__name__)


async def record_loss(
    session: AsyncSession,
    *,
    participant_id: str,
    device_id: str,
    request_meta: RequestMeta,
    loss_reason: str,
    now_utc: datetime,
    reference_reward_id: UUID | None = None,
    attempt_id: UUID,
) -> AllocationResult:
    try:
        await ParticipationAttemptsRepo.create(
            session,
            attempt=ParticipationAttempt(
                id=attempt_id,
                participant_id=participant_id,
                device_id=device_id,
                outcome=ATTEMPT_OUTCOME_LOSE,
                reward_id=reference_reward_id,
                redemption_code_id=None,
                ip_address=request_meta.ip_address,
                user_agent=request_meta.user_agent,
                metadata_={"loss_reason": loss_reason},
                created_at=now_utc,
            ),
        )
    except IntegrityError as exc:
        raise AlreadyParticipatedError from exc

    return AllocationResult.lose(attempt_id=attempt_id, loss_reason=loss_reason)


async def build_result_from_attempt(
    session: AsyncSession,
    *,
    attempt: ParticipationAttempt,
) -> AllocationResult:
    if attempt.outcome != ATTEMPT_OUTCOME_WIN:
        return AllocationResult.lose(
            attempt_id=attempt.id,
            loss_reason=str(attempt.metadata_.get("loss_reason") or "") or None,
        )

    reward = await RewardsRepo.get_by_id(session, attempt.reward_id) if attempt.reward_id else None
    code = (
        await RedemptionCodesRepo.get_by_id(session, attempt.redemption_code_id)
        if attempt.redemption_code_id is not None
        else None
    )
    if reward is None or code is None:
        raise LookupError(f"win attempt {attempt.id} references missing reward or code")

    return AllocationResult.win(
        attempt_id=attempt.id,
        reward=as_reward_summary(reward),
        code=code.code,
    )


async def _load_committed_win(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    attempt_id: UUID,
) -> AllocationResult | None:
    async with session_factory() as session:
        attempt = await ParticipationAttemptsRepo.get_by_id(session, attempt_id)
        if attempt is None or attempt.outcome != ATTEMPT_OUTCOME_WIN:
            return None
        return await build_result_from_attempt(session, attempt=attempt)


async def record_fallback_loss(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    attempt_id: UUID,
    participant_id: str,
    device_id: str,
    request_meta: RequestMeta,
    loss_reason: str,
    now_utc: datetime,
    reference_reward_id: UUID | None = None,
) -> AllocationResult:
    """Write the lose record for a draw that could not complete a win.

    Uses the draw's own ``attempt_id``. If the identity already has an attempt
    and it is this draw's WIN (the commit landed even though the caller saw a
    failure), that win is returned instead.
    """
    try:
        async with session_factory.begin() as session:
            return await record_loss(
                session,
                participant_id=participant_id,
                device_id=device_id,
                request_meta=request_meta,
                loss_reason=loss_reason,
                now_utc=now_utc,
                reference_reward_id=reference_reward_id,
                attempt_id=attempt_id,
            )
    except AlreadyParticipatedError:
        try:
            recovered = await _load_committed_win(session_factory, attempt_id=attempt_id)
        except DBAPIError as exc:
            logger.error(
                "draw_win_recovery_failed",
                attempt_id=str(attempt_id),
                loss_reason=loss_reason,
                error_type=type(exc).__name__,
            )
            raise DrawStoreUnavailableError from exc
        if recovered is None:
            raise
        logger.warning(
            "draw_win_recovered_after_failure",
            attempt_id=str(attempt_id),
            abandoned_loss_reason=loss_reason,
        )
        return recovered
    except DBAPIError as exc:
        logger.error(
            "draw_loss_record_failed",
            attempt_id=str(attempt_id),
            loss_reason=loss_reason,
            error_type=type(exc).__name__,
        )
        raise DrawStoreUnavailableError from exc
