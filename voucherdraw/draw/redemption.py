from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from voucherdraw.db.models.redemption_codes import RedemptionCode
from voucherdraw.db.repo.redemption_codes_repo import RedemptionCodesRepo
from voucherdraw.draw.codes import normalize_redemption_code
from voucherdraw.draw.constants import CODE_STATUS_ISSUED, CODE_STATUS_REDEEMED
from voucherdraw.draw.errors import RedemptionCodeNotFoundError, RedemptionCodeStateError

logger = structlog.get_logger(__name__)


async def redeem_code(
    session: AsyncSession,
    *,
    code: str,
    now_utc: datetime | None = None,
) -> RedemptionCode:
    normalized_code = normalize_redemption_code(code)
    if not normalized_code:
        raise RedemptionCodeNotFoundError

    code_row = await RedemptionCodesRepo.get_by_code_for_update(session, normalized_code)
    if code_row is None:
        raise RedemptionCodeNotFoundError
    if code_row.status != CODE_STATUS_ISSUED:
        raise RedemptionCodeStateError(code_row.status)

    code_row.status = CODE_STATUS_REDEEMED
    code_row.redeemed_at = now_utc or datetime.now(timezone.utc)
    logger.info(
        "redemption_code_redeemed",
        redemption_code_id=code_row.id,
        reward_id=str(code_row.reward_id),
        participant_id=code_row.issued_to_participant_id,
    )
    return code_row
