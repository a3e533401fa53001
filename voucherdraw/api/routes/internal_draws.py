from __future__ import annotations

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, HTTPException, Query, Request

from voucherdraw.api.routes.internal_draws_models import (
    CatalogStatusResponse,
    DrawIdentityRequest,
    DrawRequest,
    DrawResponse,
    DrawStatsResponse,
    EligibilityResponse,
    RewardDrawStatsResponse,
    RewardSummaryResponse,
)
from voucherdraw.core.config import get_settings
from voucherdraw.db.session import SessionLocal
from voucherdraw.draw.catalog import get_catalog_status
from voucherdraw.draw.errors import (
    AlreadyParticipatedError,
    DrawStoreUnavailableError,
    NoStockAvailableError,
)
from voucherdraw.draw.notifications import enqueue_draw_notification
from voucherdraw.draw.service import DrawService
from voucherdraw.draw.statistics import get_draw_statistics
from voucherdraw.draw.types import AllocationResult, RequestMeta
from voucherdraw.services.internal_auth import (
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
)

router = APIRouter(tags=["internal", "draws"])
logger = structlog.get_logger(__name__)


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(request, trusted_proxies=settings.internal_api_trusted_proxies)

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("internal_draws_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning(
            "internal_draws_auth_failed",
            reason="invalid_credentials",
            client_ip=client_ip,
        )
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def _request_meta(payload: DrawRequest, request: Request) -> RequestMeta:
    # the caller forwards the participant's own address; fall back to the calling hop
    return RequestMeta(
        ip_address=payload.ip_address or (request.client.host if request.client else None),
        user_agent=payload.user_agent or request.headers.get("User-Agent"),
    )


def _as_draw_response(result: AllocationResult) -> DrawResponse:
    reward = None
    if result.reward is not None:
        reward = RewardSummaryResponse(
            id=result.reward.id,
            name=result.reward.name,
            face_value=result.reward.face_value,
            category=result.reward.category,
        )
    return DrawResponse(
        outcome=result.outcome,
        attempt_id=result.attempt_id,
        reward=reward,
        code=result.code,
    )


@router.post("/internal/draws/eligibility", response_model=EligibilityResponse)
async def check_draw_eligibility(payload: DrawIdentityRequest, request: Request) -> EligibilityResponse:
    _assert_internal_access(request)

    try:
        result = await DrawService.check_eligibility(
            participant_id=payload.participant_id,
            device_id=payload.device_id,
        )
    except DrawStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail={"code": "E_DRAW_UNAVAILABLE"}) from exc

    return EligibilityResponse(eligible=result.eligible, reason=result.reason)


@router.post("/internal/draws", response_model=DrawResponse)
async def run_draw(payload: DrawRequest, request: Request) -> DrawResponse:
    _assert_internal_access(request)

    try:
        result = await DrawService.draw(
            participant_id=payload.participant_id,
            device_id=payload.device_id,
            request_meta=_request_meta(payload, request),
        )
    except AlreadyParticipatedError as exc:
        raise HTTPException(status_code=409, detail={"code": "E_ALREADY_PARTICIPATED"}) from exc
    except NoStockAvailableError as exc:
        raise HTTPException(status_code=410, detail={"code": "E_NO_STOCK"}) from exc
    except DrawStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail={"code": "E_DRAW_UNAVAILABLE"}) from exc

    await enqueue_draw_notification(
        result,
        participant_id=payload.participant_id,
        device_id=payload.device_id,
    )
    return _as_draw_response(result)


@router.get("/internal/draws/status", response_model=CatalogStatusResponse)
async def get_catalog_status_summary(request: Request) -> CatalogStatusResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    async with SessionLocal() as session:
        catalog_status = await get_catalog_status(session, now_utc=now_utc)

    return CatalogStatusResponse(
        generated_at=now_utc,
        accepting_draws=catalog_status.accepting_draws,
        drawable_rewards=catalog_status.drawable_rewards,
        stock_remaining_total=catalog_status.stock_remaining_total,
    )


@router.get("/internal/draws/stats", response_model=DrawStatsResponse)
async def get_draw_stats(
    request: Request,
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
) -> DrawStatsResponse:
    _assert_internal_access(request)

    if date_from is not None and date_to is not None and date_from > date_to:
        raise HTTPException(status_code=422, detail={"code": "E_INVALID_DATE_RANGE"})

    now_utc = datetime.now(timezone.utc)
    async with SessionLocal() as session:
        stats = await get_draw_statistics(session, date_from=date_from, date_to=date_to)

    return DrawStatsResponse(
        generated_at=now_utc,
        date_from=date_from,
        date_to=date_to,
        total_attempts=stats.total_attempts,
        unique_participants=stats.unique_participants,
        unique_devices=stats.unique_devices,
        total_wins=stats.total_wins,
        win_rate_percent=stats.win_rate_percent,
        rewards=[
            RewardDrawStatsResponse(
                reward_id=item.reward_id,
                name=item.name,
                face_value=item.face_value,
                stock_initial=item.stock_initial,
                stock_remaining=item.stock_remaining,
                times_won=item.times_won,
                codes_issued=item.codes_issued,
                codes_redeemed=item.codes_redeemed,
                codes_available=item.codes_available,
            )
            for item in stats.rewards
        ],
    )
