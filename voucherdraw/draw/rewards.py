from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from voucherdraw.db.models.rewards import Reward
from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.draw.codes import normalize_code_prefix
from voucherdraw.draw.constants import (
    CODE_GENERATION_POLICIES,
    DEFAULT_CODE_PREFIX,
    REWARD_CATEGORIES,
    REWARD_STATUSES,
)
from voucherdraw.draw.errors import RewardNotFoundError, RewardValidationError
from voucherdraw.draw.replenishment import provision_auto_codes

logger = structlog.get_logger(__name__)
MAX_CODE_PREFIX_LENGTH = 10
MAX_NAME_LENGTH = 255
MAX_FACE_VALUE_LENGTH = 64
# rewards.weight is NUMERIC(10, 4)
WEIGHT_QUANTUM = Decimal("0.0001")
MAX_WEIGHT = Decimal("1000000")

_UNSET: Any = object()


def _parse_weight(value: Decimal | float | int | str) -> Decimal:
    try:
        weight = Decimal(str(value))
    except InvalidOperation as exc:
        raise RewardValidationError("weight must be a number") from exc
    if not weight.is_finite() or weight < 0:
        raise RewardValidationError("weight must be a finite non-negative number")
    if weight >= MAX_WEIGHT:
        raise RewardValidationError("weight is too large")
    if weight != weight.quantize(WEIGHT_QUANTUM):
        raise RewardValidationError("weight supports at most 4 decimal places")
    return weight.quantize(WEIGHT_QUANTUM)


def _required_text(value: str | None, *, field_name: str, max_length: int) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise RewardValidationError(f"{field_name} is required")
    if len(cleaned) > max_length:
        raise RewardValidationError(f"{field_name} is too long")
    return cleaned


def _validate_window(valid_from: datetime | None, valid_to: datetime | None) -> None:
    if valid_from is not None and valid_to is not None and valid_from >= valid_to:
        raise RewardValidationError("valid_from must be before valid_to")


async def create_reward(
    session: AsyncSession,
    *,
    name: str,
    face_value: str,
    category: str,
    weight: Decimal | float | int | str,
    stock: int,
    created_by: str,
    description: str | None = None,
    valid_from: datetime | None = None,
    valid_to: datetime | None = None,
    status: str = "DRAFT",
    code_generation: str = "AUTO",
    code_prefix: str = DEFAULT_CODE_PREFIX,
    now_utc: datetime | None = None,
) -> Reward:
    now_utc = now_utc or datetime.now(timezone.utc)
    name = _required_text(name, field_name="name", max_length=MAX_NAME_LENGTH)
    face_value = _required_text(face_value, field_name="face_value", max_length=MAX_FACE_VALUE_LENGTH)
    prefix = normalize_code_prefix(code_prefix)

    if category not in REWARD_CATEGORIES:
        raise RewardValidationError(f"unknown category: {category}")
    if status not in REWARD_STATUSES:
        raise RewardValidationError(f"unknown status: {status}")
    if code_generation not in CODE_GENERATION_POLICIES:
        raise RewardValidationError(f"unknown code generation policy: {code_generation}")
    if len(prefix) > MAX_CODE_PREFIX_LENGTH:
        raise RewardValidationError("code_prefix is too long")
    if stock < 0:
        raise RewardValidationError("stock must be non-negative")
    _validate_window(valid_from, valid_to)
    if code_generation == "PRE_SEEDED" and stock != 0:
        raise RewardValidationError("pre-seeded rewards gain stock by importing codes")
    parsed_weight = _parse_weight(weight)

    reward = await RewardsRepo.create(
        session,
        reward=Reward(
            id=uuid4(),
            name=name,
            description=description,
            face_value=face_value,
            category=category,
            weight=parsed_weight,
            stock_initial=stock,
            stock_remaining=stock,
            valid_from=valid_from,
            valid_to=valid_to,
            status=status,
            code_generation=code_generation,
            code_prefix=prefix,
            created_by=created_by,
            created_at=now_utc,
            updated_at=now_utc,
        ),
    )

    codes_provisioned = 0
    if code_generation == "AUTO" and stock > 0:
        codes_provisioned = await provision_auto_codes(
            session,
            reward=reward,
            count=stock,
            now_utc=now_utc,
        )

    logger.info(
        "reward_created",
        reward_id=str(reward.id),
        category=category,
        stock=stock,
        code_generation=code_generation,
        codes_provisioned=codes_provisioned,
        created_by=created_by,
    )
    return reward


async def update_reward(
    session: AsyncSession,
    *,
    reward_id: UUID,
    name: str = _UNSET,
    description: str | None = _UNSET,
    face_value: str = _UNSET,
    weight: Decimal | float | int | str = _UNSET,
    valid_from: datetime | None = _UNSET,
    valid_to: datetime | None = _UNSET,
    now_utc: datetime | None = None,
) -> Reward:
    """Edit the descriptive fields, weight and validity window of a reward.

    Only the arguments that are passed change; ``None`` clears ``description``
    and the window bounds. Stock, status and code settings have their own
    operations. The row is locked like every other reward writer.
    """
    changes: dict[str, Any] = {}
    if name is not _UNSET:
        changes["name"] = _required_text(name, field_name="name", max_length=MAX_NAME_LENGTH)
    if face_value is not _UNSET:
        changes["face_value"] = _required_text(
            face_value,
            field_name="face_value",
            max_length=MAX_FACE_VALUE_LENGTH,
        )
    if description is not _UNSET:
        changes["description"] = (description or "").strip() or None
    if weight is not _UNSET:
        if weight is None:
            raise RewardValidationError("weight is required")
        changes["weight"] = _parse_weight(weight)
    if valid_from is not _UNSET:
        changes["valid_from"] = valid_from
    if valid_to is not _UNSET:
        changes["valid_to"] = valid_to

    reward = await RewardsRepo.get_by_id_for_update(session, reward_id)
    if reward is None:
        raise RewardNotFoundError

    _validate_window(
        changes.get("valid_from", reward.valid_from),
        changes.get("valid_to", reward.valid_to),
    )

    changed_fields = sorted(field for field, value in changes.items() if getattr(reward, field) != value)
    for field in changed_fields:
        setattr(reward, field, changes[field])
    if changed_fields:
        reward.updated_at = now_utc or datetime.now(timezone.utc)
        logger.info(
            "reward_updated",
            reward_id=str(reward.id),
            changed_fields=changed_fields,
        )
    return reward


async def set_reward_status(
    session: AsyncSession,
    *,
    reward_id: UUID,
    status: str,
    now_utc: datetime | None = None,
) -> Reward:
    if status not in REWARD_STATUSES:
        raise RewardValidationError(f"unknown status: {status}")

    reward = await RewardsRepo.get_by_id_for_update(session, reward_id)
    if reward is None:
        raise RewardNotFoundError

    previous_status = reward.status
    if previous_status != status:
        reward.status = status
        reward.updated_at = now_utc or datetime.now(timezone.utc)
        logger.info(
            "reward_status_changed",
            reward_id=str(reward.id),
            previous_status=previous_status,
            status=status,
        )
    return reward


async def get_reward(session: AsyncSession, *, reward_id: UUID) -> Reward:
    reward = await RewardsRepo.get_by_id(session, reward_id)
    if reward is None:
        raise RewardNotFoundError
    return reward


async def list_rewards(session: AsyncSession, *, status: str | None = None) -> list[Reward]:
    if status is not None and status not in REWARD_STATUSES:
        raise RewardValidationError(f"unknown status: {status}")
    rewards = await RewardsRepo.list_all(session)
    if status is None:
        return rewards
    return [reward for reward in rewards if reward.status == status]
