from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

import structlog
from fastapi import APIRouter, HTTPException, Query, Request

from voucherdraw.api.routes.internal_draws_models import (
    RedeemCodeRequest,
    RedeemCodeResponse,
    RewardListResponse,
    RewardResponse,
    RewardStatusResponse,
    RewardStatusUpdateRequest,
    RewardUpdateRequest,
    StockAdjustmentRequest,
    StockAdjustmentResponse,
)
from voucherdraw.core.config import get_settings
from voucherdraw.db.models.rewards import Reward
from voucherdraw.db.session import SessionLocal
from voucherdraw.draw.errors import (
    RedemptionCodeNotFoundError,
    RedemptionCodeStateError,
    RewardNotFoundError,
    RewardValidationError,
    StockAdjustmentInvalidError,
)
from voucherdraw.draw.redemption import redeem_code
from voucherdraw.draw.replenishment import adjust_stock
from voucherdraw.draw.rewards import get_reward, list_rewards, set_reward_status, update_reward
from voucherdraw.services.internal_auth import (
    extract_client_ip,
    is_client_ip_allowed,
    is_internal_request_authenticated,
)

router = APIRouter(tags=["internal", "rewards"])
logger = structlog.get_logger(__name__)


def _assert_internal_access(request: Request) -> None:
    settings = get_settings()
    client_ip = extract_client_ip(request, trusted_proxies=settings.internal_api_trusted_proxies)

    if not is_client_ip_allowed(client_ip=client_ip, allowlist=settings.internal_api_allowlist):
        logger.warning("internal_rewards_auth_failed", reason="ip_not_allowed", client_ip=client_ip)
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})

    if not is_internal_request_authenticated(request, expected_token=settings.internal_api_token):
        logger.warning(
            "internal_rewards_auth_failed",
            reason="invalid_credentials",
            client_ip=client_ip,
        )
        raise HTTPException(status_code=403, detail={"code": "E_FORBIDDEN"})


def _as_reward_response(reward: Reward) -> RewardResponse:
    return RewardResponse.model_validate(reward, from_attributes=True)


@router.get("/internal/rewards", response_model=RewardListResponse)
async def get_rewards(
    request: Request,
    status: str | None = Query(default=None, max_length=16),
) -> RewardListResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal() as session:
            rewards = await list_rewards(session, status=status.strip().upper() if status else None)
            items = [_as_reward_response(reward) for reward in rewards]
    except RewardValidationError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_REWARD_STATUS_INVALID"}) from exc

    return RewardListResponse(items=items)


@router.get("/internal/rewards/{reward_id}", response_model=RewardResponse)
async def get_reward_details(reward_id: UUID, request: Request) -> RewardResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal() as session:
            reward = await get_reward(session, reward_id=reward_id)
            response = _as_reward_response(reward)
    except RewardNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_REWARD_NOT_FOUND"}) from exc

    return response


@router.patch("/internal/rewards/{reward_id}", response_model=RewardResponse)
async def patch_reward(
    reward_id: UUID,
    payload: RewardUpdateRequest,
    request: Request,
) -> RewardResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            reward = await update_reward(
                session,
                reward_id=reward_id,
                **payload.model_dump(exclude_unset=True),
            )
            response = _as_reward_response(reward)
    except RewardNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_REWARD_NOT_FOUND"}) from exc
    except RewardValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "E_REWARD_INVALID", "message": str(exc)},
        ) from exc

    return response


@router.post(
    "/internal/rewards/{reward_id}/stock-adjustments",
    response_model=StockAdjustmentResponse,
)
async def create_stock_adjustment(
    reward_id: UUID,
    payload: StockAdjustmentRequest,
    request: Request,
) -> StockAdjustmentResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            result = await adjust_stock(
                session,
                reward_id=reward_id,
                delta=payload.delta,
                reason=payload.reason,
                created_by=payload.created_by,
            )
    except RewardNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_REWARD_NOT_FOUND"}) from exc
    except StockAdjustmentInvalidError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": "E_STOCK_ADJUSTMENT_INVALID", "message": str(exc)},
        ) from exc

    return StockAdjustmentResponse(
        adjustment_id=result.adjustment_id,
        reward_id=result.reward_id,
        previous_stock=result.previous_stock,
        new_stock=result.new_stock,
        delta=result.delta,
        codes_provisioned=result.codes_provisioned,
    )


@router.post("/internal/rewards/{reward_id}/status", response_model=RewardStatusResponse)
async def update_reward_status(
    reward_id: UUID,
    payload: RewardStatusUpdateRequest,
    request: Request,
) -> RewardStatusResponse:
    _assert_internal_access(request)

    try:
        async with SessionLocal.begin() as session:
            reward = await set_reward_status(
                session,
                reward_id=reward_id,
                status=payload.status.strip().upper(),
            )
            response = RewardStatusResponse(
                reward_id=reward.id,
                status=reward.status,
                stock_remaining=reward.stock_remaining,
                updated_at=reward.updated_at,
            )
    except RewardNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_REWARD_NOT_FOUND"}) from exc
    except RewardValidationError as exc:
        raise HTTPException(status_code=422, detail={"code": "E_REWARD_STATUS_INVALID"}) from exc

    return response


@router.post("/internal/redemption-codes/redeem", response_model=RedeemCodeResponse)
async def redeem_redemption_code(payload: RedeemCodeRequest, request: Request) -> RedeemCodeResponse:
    _assert_internal_access(request)

    now_utc = datetime.now(timezone.utc)
    try:
        async with SessionLocal.begin() as session:
            code_row = await redeem_code(session, code=payload.code, now_utc=now_utc)
            response = RedeemCodeResponse(
                code=code_row.code,
                reward_id=code_row.reward_id,
                status=code_row.status,
                issued_to_participant_id=code_row.issued_to_participant_id,
                redeemed_at=code_row.redeemed_at or now_utc,
            )
    except RedemptionCodeNotFoundError as exc:
        raise HTTPException(status_code=404, detail={"code": "E_CODE_NOT_FOUND"}) from exc
    except RedemptionCodeStateError as exc:
        raise HTTPException(
            status_code=409,
            detail={"code": "E_CODE_NOT_REDEEMABLE", "status": str(exc)},
        ) from exc

    return response
