from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from types import SimpleNamespace
from uuid import UUID

import pytest
from sqlalchemy import func, select

from tests.integration.draw_fixtures import create_active_reward, fixed_random
from voucherdraw.db.models.participation_attempts import ParticipationAttempt
from voucherdraw.db.models.redemption_codes import RedemptionCode
from voucherdraw.db.models.rewards import Reward
from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.db.session import SessionLocal
from voucherdraw.draw import service as draw_service
from voucherdraw.draw.errors import AlreadyParticipatedError, NoStockAvailableError
from voucherdraw.draw.service import DrawService
from voucherdraw.draw.types import AllocationResult

RACE_LOSS_REASONS = {"STOCK_RACE", "CODE_INVENTORY_EMPTY", "NO_CANDIDATE"}


async def _count_attempts(participant_id: str | None = None) -> int:
    async with SessionLocal() as session:
        stmt = select(func.count(ParticipationAttempt.id))
        if participant_id is not None:
            stmt = stmt.where(ParticipationAttempt.participant_id == participant_id)
        return int((await session.execute(stmt)).scalar_one())


async def _stock_remaining(reward_id: UUID) -> int:
    async with SessionLocal() as session:
        reward = await RewardsRepo.get_by_id(session, reward_id)
        assert reward is not None
        return reward.stock_remaining


async def _issued_codes(reward_id: UUID) -> int:
    async with SessionLocal() as session:
        stmt = select(func.count(RedemptionCode.id)).where(
            RedemptionCode.reward_id == reward_id,
            RedemptionCode.status == "ISSUED",
        )
        return int((await session.execute(stmt)).scalar_one())


async def _run_together(draws: list[Callable[[], Awaitable[AllocationResult]]]) -> list[object]:
    barrier = asyncio.Event()

    async def _attempt(draw: Callable[[], Awaitable[AllocationResult]]) -> AllocationResult:
        await barrier.wait()
        return await draw()

    tasks = [asyncio.create_task(_attempt(draw)) for draw in draws]
    barrier.set()
    return await asyncio.gather(*tasks, return_exceptions=True)


def _partition(results: list[object]) -> tuple[list[AllocationResult], list[AllocationResult], list[BaseException]]:
    wins = [item for item in results if isinstance(item, AllocationResult) and item.is_win]
    losses = [item for item in results if isinstance(item, AllocationResult) and not item.is_win]
    errors = [item for item in results if isinstance(item, BaseException)]
    return wins, losses, errors


def _assert_race_losers(losses: list[AllocationResult], errors: list[BaseException]) -> None:
    assert all(item.code is None and item.reward is None for item in losses)
    assert {item.loss_reason for item in losses} <= RACE_LOSS_REASONS
    assert all(isinstance(item, NoStockAvailableError) for item in errors)


@pytest.mark.asyncio
async def test_parallel_draws_by_same_identity_record_one_attempt() -> None:
    await create_active_reward(name="Coffee", weight=1.0, stock=10)

    results = await _run_together(
        [lambda: DrawService.draw(participant_id="p-same", device_id="d-same") for _ in range(5)]
    )

    completed = [item for item in results if not isinstance(item, BaseException)]
    rejected = [item for item in results if isinstance(item, BaseException)]
    assert len(completed) == 1
    assert all(isinstance(item, AlreadyParticipatedError) for item in rejected)
    assert await _count_attempts("p-same") == 1


@pytest.mark.asyncio
async def test_parallel_draws_never_oversell_and_issue_unique_codes() -> None:
    reward_id = await create_active_reward(name="Cinema", weight=1.0, stock=5)

    results = await _run_together(
        [
            (lambda index=index: DrawService.draw(participant_id=f"p-{index}", device_id=f"d-{index}"))
            for index in range(20)
        ]
    )

    wins, losses, errors = _partition(results)
    assert len(wins) == 5
    assert len({item.code for item in wins}) == 5
    _assert_race_losers(losses, errors)
    assert len(wins) + len(losses) + len(errors) == 20

    assert await _stock_remaining(reward_id) == 0
    assert await _issued_codes(reward_id) == 5
    assert await _count_attempts() == len(wins) + len(losses)


@pytest.mark.asyncio
async def test_last_unit_goes_to_exactly_one_of_two_simultaneous_draws() -> None:
    reward_id = await create_active_reward(name="Last seat", weight=1.0, stock=1)

    results = await _run_together(
        [
            lambda: DrawService.draw(participant_id="p-a", device_id="d-a"),
            lambda: DrawService.draw(participant_id="p-b", device_id="d-b"),
        ]
    )

    wins, losses, errors = _partition(results)
    assert len(wins) == 1
    assert len(losses) + len(errors) == 1
    _assert_race_losers(losses, errors)

    assert await _stock_remaining(reward_id) == 0
    assert await _issued_codes(reward_id) == 1
    assert await _count_attempts() == len(wins) + len(losses)


@pytest.mark.asyncio
async def test_two_single_unit_rewards_split_between_three_simultaneous_identities() -> None:
    reward_a = await create_active_reward(name="A", weight=0.2, stock=1)
    reward_b = await create_active_reward(name="B", weight=0.8, stock=1)

    # catalog order is B then A: 0.1 lands on B, 0.95 on A, 0.5 on B while B is drawable
    results = await _run_together(
        [
            lambda: DrawService.draw(participant_id="p-1", device_id="d-1", random_source=fixed_random(0.1)),
            lambda: DrawService.draw(participant_id="p-2", device_id="d-2", random_source=fixed_random(0.95)),
            lambda: DrawService.draw(participant_id="p-3", device_id="d-3", random_source=fixed_random(0.5)),
        ]
    )

    wins, losses, errors = _partition(results)
    assert len(wins) == 2
    assert sorted(str(item.reward.id) for item in wins) == sorted([str(reward_a), str(reward_b)])
    assert len({item.code for item in wins}) == 2
    assert len(losses) + len(errors) == 1
    _assert_race_losers(losses, errors)

    assert await _stock_remaining(reward_a) == 0
    assert await _stock_remaining(reward_b) == 0
    assert await _count_attempts() == len(wins) + len(losses)


@pytest.mark.asyncio
async def test_single_unit_rewards_are_exhausted_in_weight_order() -> None:
    reward_a = await create_active_reward(name="A", weight=0.2, stock=1)
    reward_b = await create_active_reward(name="B", weight=0.8, stock=1)

    first = await DrawService.draw(participant_id="p-1", device_id="d-1", random_source=fixed_random(0.1))
    second = await DrawService.draw(participant_id="p-2", device_id="d-2", random_source=fixed_random(0.1))

    assert first.is_win is True
    assert first.reward is not None and first.reward.id == reward_b
    assert second.is_win is True
    assert second.reward is not None and second.reward.id == reward_a
    assert first.code != second.code

    with pytest.raises(NoStockAvailableError):
        await DrawService.draw(participant_id="p-3", device_id="d-3", random_source=fixed_random(0.1))

    with pytest.raises(AlreadyParticipatedError):
        await DrawService.draw(participant_id="p-1", device_id="d-1")


@pytest.mark.asyncio
async def test_draw_degrades_to_lose_when_reward_lock_times_out(monkeypatch) -> None:
    reward_id = await create_active_reward(name="Locked", weight=1.0, stock=3)
    monkeypatch.setattr(
        draw_service,
        "get_settings",
        lambda: SimpleNamespace(draw_lock_timeout_ms=200, draw_allocation_timeout_seconds=5.0),
    )

    async with SessionLocal.begin() as holder:
        locked = await RewardsRepo.get_by_id_for_update(holder, reward_id)
        assert locked is not None
        result = await DrawService.draw(participant_id="p-lock", device_id="d-lock")

    assert result.is_win is False
    assert result.loss_reason == "ALLOCATION_TIMEOUT"
    assert result.code is None

    async with SessionLocal() as session:
        reward = await session.get(Reward, reward_id)
        attempt = await session.get(ParticipationAttempt, result.attempt_id)

    assert reward is not None and reward.stock_remaining == 3
    assert attempt is not None
    assert attempt.outcome == "LOSE"
    assert attempt.metadata_["loss_reason"] == "ALLOCATION_TIMEOUT"

    with pytest.raises(AlreadyParticipatedError):
        await DrawService.draw(participant_id="p-lock", device_id="d-lock")


@pytest.mark.asyncio
async def test_eligibility_reflects_participation_and_stock() -> None:
    await create_active_reward(name="Solo", weight=1.0, stock=1)

    before = await DrawService.check_eligibility(participant_id="p-e", device_id="d-e")
    win = await DrawService.draw(participant_id="p-e", device_id="d-e")
    after = await DrawService.check_eligibility(participant_id="p-e", device_id="d-e")
    other = await DrawService.check_eligibility(participant_id="p-x", device_id="d-x")

    assert before.eligible is True
    assert win.is_win is True
    assert after.eligible is False and after.reason == "ALREADY_PARTICIPATED"
    assert other.eligible is False and other.reason == "NO_STOCK"
