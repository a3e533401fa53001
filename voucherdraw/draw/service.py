from __future__ import annotations

import asyncio
import random
from datetime import datetime, timezone
from uuid import UUID, uuid4

import structlog
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from voucherdraw.core.config import get_settings
from voucherdraw.db.session import SessionLocal
from voucherdraw.draw.allocation import allocate, is_lock_timeout_error
from voucherdraw.draw.catalog import load_catalog
from voucherdraw.draw.constants import (
    LOSS_ALLOCATION_TIMEOUT,
    LOSS_NO_CANDIDATE,
    LOSS_STORE_FAILURE,
)
from voucherdraw.draw.eligibility import check_eligibility, raise_for_ineligible
from voucherdraw.draw.errors import AllocationRaceError, DrawStoreUnavailableError
from voucherdraw.draw.outcomes import record_fallback_loss
from voucherdraw.draw.selector import RandomSource, select_reward
from voucherdraw.draw.types import AllocationResult, EligibilityResult, RequestMeta

logger = structlog.get_logger(__name__)
_system_random = random.SystemRandom()


async def _allocate_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    reward_id: UUID,
    participant_id: str,
    device_id: str,
    request_meta: RequestMeta,
    attempt_id: UUID,
    now_utc: datetime,
    lock_timeout_ms: int,
) -> AllocationResult:
    async with session_factory.begin() as session:
        return await allocate(
            session,
            reward_id=reward_id,
            participant_id=participant_id,
            device_id=device_id,
            request_meta=request_meta,
            attempt_id=attempt_id,
            now_utc=now_utc,
            lock_timeout_ms=lock_timeout_ms,
        )


class DrawService:
    @staticmethod
    async def check_eligibility(
        *,
        participant_id: str,
        device_id: str,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        now_utc: datetime | None = None,
    ) -> EligibilityResult:
        factory = session_factory or SessionLocal
        now_utc = now_utc or datetime.now(timezone.utc)
        try:
            async with factory() as session:
                return await check_eligibility(
                    session,
                    participant_id=participant_id,
                    device_id=device_id,
                    now_utc=now_utc,
                )
        except DBAPIError as exc:
            raise DrawStoreUnavailableError from exc

    @staticmethod
    async def draw(
        *,
        participant_id: str,
        device_id: str,
        request_meta: RequestMeta | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        now_utc: datetime | None = None,
        random_source: RandomSource | None = None,
    ) -> AllocationResult:
        settings = get_settings()
        factory = session_factory or SessionLocal
        now_utc = now_utc or datetime.now(timezone.utc)
        request_meta = request_meta or RequestMeta()
        random_source = random_source or _system_random.random

        try:
            async with factory() as session:
                eligibility = await check_eligibility(
                    session,
                    participant_id=participant_id,
                    device_id=device_id,
                    now_utc=now_utc,
                )
                raise_for_ineligible(eligibility)
                catalog = await load_catalog(session, now_utc=now_utc)
        except DBAPIError as exc:
            raise DrawStoreUnavailableError from exc

        attempt_id = uuid4()
        candidate = select_reward(catalog, random_source)
        if candidate is None:
            result = await record_fallback_loss(
                factory,
                attempt_id=attempt_id,
                participant_id=participant_id,
                device_id=device_id,
                request_meta=request_meta,
                loss_reason=LOSS_NO_CANDIDATE,
                now_utc=now_utc,
            )
            logger.info("draw_completed", attempt_id=str(attempt_id), outcome=result.outcome)
            return result

        try:
            result = await asyncio.wait_for(
                _allocate_in_transaction(
                    factory,
                    reward_id=candidate.reward_id,
                    participant_id=participant_id,
                    device_id=device_id,
                    request_meta=request_meta,
                    attempt_id=attempt_id,
                    now_utc=now_utc,
                    lock_timeout_ms=settings.draw_lock_timeout_ms,
                ),
                timeout=settings.draw_allocation_timeout_seconds,
            )
        except AllocationRaceError as exc:
            loss_reason = exc.reason
        except asyncio.TimeoutError:
            logger.warning(
                "draw_allocation_timeout",
                attempt_id=str(attempt_id),
                reward_id=str(candidate.reward_id),
                timeout_seconds=settings.draw_allocation_timeout_seconds,
            )
            loss_reason = LOSS_ALLOCATION_TIMEOUT
        except IntegrityError:
            # typically a concurrent draw by the same identity; the fallback surfaces it
            logger.info(
                "draw_allocation_conflict",
                attempt_id=str(attempt_id),
                reward_id=str(candidate.reward_id),
            )
            loss_reason = LOSS_STORE_FAILURE
        except DBAPIError as exc:
            if is_lock_timeout_error(exc):
                logger.warning(
                    "draw_allocation_timeout",
                    attempt_id=str(attempt_id),
                    reward_id=str(candidate.reward_id),
                    lock_timeout_ms=settings.draw_lock_timeout_ms,
                )
                loss_reason = LOSS_ALLOCATION_TIMEOUT
            else:
                logger.exception(
                    "draw_allocation_store_failure",
                    attempt_id=str(attempt_id),
                    reward_id=str(candidate.reward_id),
                )
                loss_reason = LOSS_STORE_FAILURE
        except DrawStoreUnavailableError:
            logger.warning(
                "draw_store_unavailable",
                attempt_id=str(attempt_id),
                reward_id=str(candidate.reward_id),
            )
            raise
        else:
            logger.info(
                "draw_completed",
                attempt_id=str(attempt_id),
                outcome=result.outcome,
                reward_id=str(candidate.reward_id),
            )
            return result

        result = await record_fallback_loss(
            factory,
            attempt_id=attempt_id,
            participant_id=participant_id,
            device_id=device_id,
            request_meta=request_meta,
            loss_reason=loss_reason,
            now_utc=now_utc,
            reference_reward_id=candidate.reward_id,
        )
        logger.info(
            "draw_completed",
            attempt_id=str(attempt_id),
            outcome=result.outcome,
            loss_reason=loss_reason,
        )
        return result
