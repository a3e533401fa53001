from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class DrawIdentityRequest(BaseModel):
    participant_id: str = Field(min_length=1, max_length=64)
    device_id: str = Field(min_length=1, max_length=64)


class DrawRequest(DrawIdentityRequest):
    ip_address: str | None = Field(default=None, max_length=45)
    user_agent: str | None = Field(default=None, max_length=512)


class EligibilityResponse(BaseModel):
    eligible: bool
    reason: str | None = None


class RewardSummaryResponse(BaseModel):
    id: UUID
    name: str
    face_value: str
    category: str


class DrawResponse(BaseModel):
    outcome: str
    attempt_id: UUID
    reward: RewardSummaryResponse | None = None
    code: str | None = None


class RewardDrawStatsResponse(BaseModel):
    reward_id: UUID
    name: str
    face_value: str
    stock_initial: int = Field(ge=0)
    stock_remaining: int = Field(ge=0)
    times_won: int = Field(ge=0)
    codes_issued: int = Field(ge=0)
    codes_redeemed: int = Field(ge=0)
    codes_available: int = Field(ge=0)


class DrawStatsResponse(BaseModel):
    generated_at: datetime
    date_from: datetime | None = None
    date_to: datetime | None = None
    total_attempts: int = Field(ge=0)
    unique_participants: int = Field(ge=0)
    unique_devices: int = Field(ge=0)
    total_wins: int = Field(ge=0)
    win_rate_percent: float = Field(ge=0.0, le=100.0)
    rewards: list[RewardDrawStatsResponse]


class StockAdjustmentRequest(BaseModel):
    delta: int
    reason: str = Field(min_length=1, max_length=500)
    created_by: str = Field(min_length=1, max_length=64)


class StockAdjustmentResponse(BaseModel):
    adjustment_id: int
    reward_id: UUID
    previous_stock: int
    new_stock: int
    delta: int
    codes_provisioned: int


class RewardStatusUpdateRequest(BaseModel):
    status: str = Field(min_length=1, max_length=16)


class RewardStatusResponse(BaseModel):
    reward_id: UUID
    status: str
    stock_remaining: int
    updated_at: datetime


class RedeemCodeRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)


class RedeemCodeResponse(BaseModel):
    code: str
    reward_id: UUID
    status: str
    issued_to_participant_id: str | None = None
    redeemed_at: datetime


class CatalogStatusResponse(BaseModel):
    generated_at: datetime
    accepting_draws: bool
    drawable_rewards: int = Field(ge=0)
    stock_remaining_total: int = Field(ge=0)


class RewardResponse(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    face_value: str
    category: str
    weight: Decimal
    stock_initial: int
    stock_remaining: int
    valid_from: datetime | None = None
    valid_to: datetime | None = None
    status: str
    code_generation: str
    code_prefix: str
    created_by: str
    created_at: datetime
    updated_at: datetime


class RewardListResponse(BaseModel):
    items: list[RewardResponse]


class RewardUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    face_value: str | None = Field(default=None, min_length=1, max_length=64)
    weight: Decimal | None = Field(default=None, ge=0)
    valid_from: datetime | None = None
    valid_to: datetime | None = None
