from __future__ import annotations

from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from voucherdraw.db.repo.participation_attempts_repo import ParticipationAttemptsRepo
from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.draw.constants import INELIGIBLE_ALREADY_PARTICIPATED, INELIGIBLE_NO_STOCK
from voucherdraw.draw.errors import AlreadyParticipatedError, NoStockAvailableError
from voucherdraw.draw.types import EligibilityResult


async def check_eligibility(
    session: AsyncSession,
    *,
    participant_id: str,
    device_id: str,
    now_utc: datetime,
) -> EligibilityResult:
    # Advisory only: the unique (participant_id, device_id) constraint is the real guard.
    existing = await ParticipationAttemptsRepo.get_by_identity(
        session,
        participant_id=participant_id,
        device_id=device_id,
    )
    if existing is not None:
        return EligibilityResult(eligible=False, reason=INELIGIBLE_ALREADY_PARTICIPATED)

    if not await RewardsRepo.has_drawable(session, now_utc=now_utc):
        return EligibilityResult(eligible=False, reason=INELIGIBLE_NO_STOCK)

    return EligibilityResult(eligible=True)


def raise_for_ineligible(result: EligibilityResult) -> None:
    if result.eligible:
        return
    if result.reason == INELIGIBLE_ALREADY_PARTICIPATED:
        raise AlreadyParticipatedError
    raise NoStockAvailableError
