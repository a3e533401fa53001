from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from voucherdraw.draw.constants import OUTCOME_LOSE, OUTCOME_WIN


@dataclass(frozen=True, slots=True)
class RequestMeta:
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    reward_id: UUID
    name: str
    weight: float
    stock_remaining: int


@dataclass(frozen=True, slots=True)
class EligibilityResult:
    eligible: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class RewardSummary:
    id: UUID
    name: str
    face_value: str
    category: str


@dataclass(frozen=True, slots=True)
class AllocationResult:
    outcome: str
    attempt_id: UUID
    reward: RewardSummary | None = None
    code: str | None = None
    loss_reason: str | None = None

    @classmethod
    def win(cls, *, attempt_id: UUID, reward: RewardSummary, code: str) -> AllocationResult:
        return cls(outcome=OUTCOME_WIN, attempt_id=attempt_id, reward=reward, code=code)

    @classmethod
    def lose(cls, *, attempt_id: UUID, loss_reason: str | None = None) -> AllocationResult:
        return cls(outcome=OUTCOME_LOSE, attempt_id=attempt_id, loss_reason=loss_reason)

    @property
    def is_win(self) -> bool:
        return self.outcome == OUTCOME_WIN

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "outcome": self.outcome,
            "attempt_id": str(self.attempt_id),
        }
        if self.reward is not None:
            payload["reward"] = {
                "id": str(self.reward.id),
                "name": self.reward.name,
                "face_value": self.reward.face_value,
                "category": self.reward.category,
            }
        if self.code is not None:
            payload["code"] = self.code
        return payload


@dataclass(frozen=True, slots=True)
class StockAdjustmentResult:
    adjustment_id: int
    reward_id: UUID
    previous_stock: int
    new_stock: int
    delta: int
    codes_provisioned: int


@dataclass(frozen=True, slots=True)
class RewardDrawStats:
    reward_id: UUID
    name: str
    face_value: str
    stock_initial: int
    stock_remaining: int
    times_won: int
    codes_issued: int
    codes_redeemed: int
    codes_available: int


@dataclass(slots=True)
class DrawStatistics:
    total_attempts: int
    unique_participants: int
    unique_devices: int
    total_wins: int
    win_rate_percent: float
    rewards: list[RewardDrawStats] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CatalogStatus:
    drawable_rewards: int
    stock_remaining_total: int

    @property
    def accepting_draws(self) -> bool:
        return self.drawable_rewards > 0
