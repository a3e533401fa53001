from __future__ import annotations

import asyncio
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError

from voucherdraw.draw import service
from voucherdraw.draw.errors import (
    AllocationRaceError,
    AlreadyParticipatedError,
    DrawStoreUnavailableError,
    NoStockAvailableError,
)
from voucherdraw.draw.service import DrawService
from voucherdraw.draw.types import (
    AllocationResult,
    CatalogEntry,
    EligibilityResult,
    RequestMeta,
    RewardSummary,
)

REWARD_A = CatalogEntry(reward_id=uuid4(), name="A", weight=0.2, stock_remaining=1)
REWARD_B = CatalogEntry(reward_id=uuid4(), name="B", weight=0.8, stock_remaining=1)


class _PgError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(sqlstate)
        self.sqlstate = sqlstate


def _patch_read_path(
    monkeypatch,
    *,
    catalog: list[CatalogEntry],
    eligibility: EligibilityResult | None = None,
) -> None:
    async def _fake_check_eligibility(session, *, participant_id, device_id, now_utc):
        return eligibility or EligibilityResult(eligible=True)

    async def _fake_load_catalog(session, *, now_utc):
        return catalog

    monkeypatch.setattr(service, "check_eligibility", _fake_check_eligibility)
    monkeypatch.setattr(service, "load_catalog", _fake_load_catalog)
    monkeypatch.setattr(
        service,
        "get_settings",
        lambda: SimpleNamespace(draw_allocation_timeout_seconds=0.05, draw_lock_timeout_ms=100),
    )


def _patch_fallback(monkeypatch) -> list[dict[str, object]]:
    calls: list[dict[str, object]] = []

    async def _fake_fallback(session_factory, **kwargs):
        calls.append(kwargs)
        return AllocationResult.lose(attempt_id=kwargs["attempt_id"], loss_reason=kwargs["loss_reason"])

    monkeypatch.setattr(service, "record_fallback_loss", _fake_fallback)
    return calls


def _patch_allocation(monkeypatch, behaviour) -> list[dict[str, object]]:
    calls: list[dict[str, object]] = []

    async def _fake_allocate(session_factory, **kwargs):
        calls.append(kwargs)
        return await behaviour(**kwargs)

    monkeypatch.setattr(service, "_allocate_in_transaction", _fake_allocate)
    return calls


async def _draw(session_factory, random_value: float = 0.0):
    return await DrawService.draw(
        participant_id="participant-1",
        device_id="device-1",
        request_meta=RequestMeta(ip_address="203.0.113.9"),
        session_factory=session_factory,
        random_source=lambda: random_value,
    )


@pytest.mark.asyncio
async def test_draw_returns_win_from_allocation(monkeypatch, session_factory) -> None:
    _patch_read_path(monkeypatch, catalog=[REWARD_B, REWARD_A])
    fallback_calls = _patch_fallback(monkeypatch)

    async def _win(**kwargs):
        return AllocationResult.win(
            attempt_id=kwargs["attempt_id"],
            reward=RewardSummary(id=kwargs["reward_id"], name="B", face_value="5 EUR", category="FIXED_AMOUNT_DISCOUNT"),
            code="LVB0000001",
        )

    allocation_calls = _patch_allocation(monkeypatch, _win)

    result = await _draw(session_factory, random_value=0.1)

    assert result.is_win
    assert result.code == "LVB0000001"
    assert allocation_calls[0]["reward_id"] == REWARD_B.reward_id
    assert allocation_calls[0]["lock_timeout_ms"] == 100
    assert allocation_calls[0]["request_meta"].ip_address == "203.0.113.9"
    assert fallback_calls == []


@pytest.mark.asyncio
async def test_draw_uses_random_source_for_candidate(monkeypatch, session_factory) -> None:
    _patch_read_path(monkeypatch, catalog=[REWARD_B, REWARD_A])
    _patch_fallback(monkeypatch)

    async def _race(**kwargs):
        raise AllocationRaceError("STOCK_RACE")

    allocation_calls = _patch_allocation(monkeypatch, _race)

    await _draw(session_factory, random_value=0.95)

    assert allocation_calls[0]["reward_id"] == REWARD_A.reward_id


@pytest.mark.asyncio
async def test_draw_records_loss_when_catalog_is_empty(monkeypatch, session_factory) -> None:
    _patch_read_path(monkeypatch, catalog=[])
    fallback_calls = _patch_fallback(monkeypatch)
    allocation_calls = _patch_allocation(monkeypatch, None)

    result = await _draw(session_factory)

    assert result.outcome == "lose"
    assert allocation_calls == []
    assert fallback_calls[0]["loss_reason"] == "NO_CANDIDATE"
    assert "reference_reward_id" not in fallback_calls[0]


@pytest.mark.asyncio
async def test_draw_degrades_stock_race_to_loss(monkeypatch, session_factory) -> None:
    _patch_read_path(monkeypatch, catalog=[REWARD_A])
    fallback_calls = _patch_fallback(monkeypatch)

    async def _race(**kwargs):
        raise AllocationRaceError("STOCK_RACE")

    allocation_calls = _patch_allocation(monkeypatch, _race)

    result = await _draw(session_factory)

    assert result.outcome == "lose"
    assert result.loss_reason == "STOCK_RACE"
    assert fallback_calls[0]["reference_reward_id"] == REWARD_A.reward_id
    assert fallback_calls[0]["attempt_id"] == allocation_calls[0]["attempt_id"]


@pytest.mark.asyncio
async def test_draw_degrades_slow_allocation_to_timeout_loss(monkeypatch, session_factory) -> None:
    _patch_read_path(monkeypatch, catalog=[REWARD_A])
    fallback_calls = _patch_fallback(monkeypatch)

    async def _hang(**kwargs):
        await asyncio.sleep(5)

    _patch_allocation(monkeypatch, _hang)

    result = await _draw(session_factory)

    assert result.loss_reason == "ALLOCATION_TIMEOUT"
    assert fallback_calls[0]["loss_reason"] == "ALLOCATION_TIMEOUT"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("error", "expected_reason"),
    [
        (DBAPIError("SELECT", {}, _PgError("55P03")), "ALLOCATION_TIMEOUT"),
        (DBAPIError("UPDATE", {}, _PgError("08006")), "STORE_FAILURE"),
        (IntegrityError("INSERT", {}, _PgError("23505")), "STORE_FAILURE"),
    ],
)
async def test_draw_degrades_store_errors_during_allocation(
    monkeypatch,
    session_factory,
    error: Exception,
    expected_reason: str,
) -> None:
    _patch_read_path(monkeypatch, catalog=[REWARD_A])
    fallback_calls = _patch_fallback(monkeypatch)

    async def _fail(**kwargs):
        raise error

    _patch_allocation(monkeypatch, _fail)

    result = await _draw(session_factory)

    assert result.outcome == "lose"
    assert fallback_calls[0]["loss_reason"] == expected_reason


@pytest.mark.asyncio
async def test_draw_propagates_store_outage_before_lock(monkeypatch, session_factory) -> None:
    _patch_read_path(monkeypatch, catalog=[REWARD_A])
    fallback_calls = _patch_fallback(monkeypatch)

    async def _outage(**kwargs):
        raise DrawStoreUnavailableError

    _patch_allocation(monkeypatch, _outage)

    with pytest.raises(DrawStoreUnavailableError):
        await _draw(session_factory)
    assert fallback_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("reason", "error_type"),
    [
        ("ALREADY_PARTICIPATED", AlreadyParticipatedError),
        ("NO_STOCK", NoStockAvailableError),
    ],
)
async def test_draw_rejects_ineligible_identity(
    monkeypatch,
    session_factory,
    reason: str,
    error_type: type[Exception],
) -> None:
    _patch_read_path(
        monkeypatch,
        catalog=[REWARD_A],
        eligibility=EligibilityResult(eligible=False, reason=reason),
    )
    fallback_calls = _patch_fallback(monkeypatch)
    allocation_calls = _patch_allocation(monkeypatch, None)

    with pytest.raises(error_type):
        await _draw(session_factory)
    assert allocation_calls == []
    assert fallback_calls == []


@pytest.mark.asyncio
async def test_draw_wraps_read_path_store_errors(monkeypatch, session_factory) -> None:
    _patch_read_path(monkeypatch, catalog=[REWARD_A])

    async def _broken_catalog(session, *, now_utc):
        raise DBAPIError("SELECT", {}, _PgError("08006"))

    monkeypatch.setattr(service, "load_catalog", _broken_catalog)

    with pytest.raises(DrawStoreUnavailableError):
        await _draw(session_factory)


@pytest.mark.asyncio
async def test_check_eligibility_wraps_store_errors(monkeypatch, session_factory) -> None:
    async def _broken(session, *, participant_id, device_id, now_utc):
        raise DBAPIError("SELECT", {}, _PgError("08006"))

    monkeypatch.setattr(service, "check_eligibility", _broken)

    with pytest.raises(DrawStoreUnavailableError):
        await DrawService.check_eligibility(
            participant_id="p",
            device_id="d",
            session_factory=session_factory,
        )
