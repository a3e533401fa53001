from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.draw.catalog import as_draw_weight, get_catalog_status, is_reward_drawable, load_catalog

NOW_UTC = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _reward(**overrides: object) -> SimpleNamespace:
    values: dict[str, object] = {
        "id": uuid4(),
        "name": "Coffee 10%",
        "face_value": "10%",
        "category": "PERCENT_DISCOUNT",
        "weight": Decimal("2.5000"),
        "stock_remaining": 5,
        "status": "ACTIVE",
        "valid_from": None,
        "valid_to": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (Decimal("1.2500"), 1.25),
        (3, 3.0),
        ("0.5", 0.5),
        (-1, 0.0),
        (float("nan"), 0.0),
        (float("inf"), 0.0),
        (None, 0.0),
        ("abc", 0.0),
    ],
)
def test_as_draw_weight_sanitizes_values(raw: object, expected: float) -> None:
    assert as_draw_weight(raw) == expected


def test_is_reward_drawable_requires_active_status_stock_and_open_window() -> None:
    assert is_reward_drawable(_reward(), now_utc=NOW_UTC) is True
    assert is_reward_drawable(_reward(status="INACTIVE"), now_utc=NOW_UTC) is False
    assert is_reward_drawable(_reward(stock_remaining=0), now_utc=NOW_UTC) is False
    assert (
        is_reward_drawable(_reward(valid_from=NOW_UTC + timedelta(minutes=1)), now_utc=NOW_UTC)
        is False
    )
    assert (
        is_reward_drawable(_reward(valid_to=NOW_UTC - timedelta(minutes=1)), now_utc=NOW_UTC)
        is False
    )
    assert (
        is_reward_drawable(
            _reward(valid_from=NOW_UTC - timedelta(days=1), valid_to=NOW_UTC + timedelta(days=1)),
            now_utc=NOW_UTC,
        )
        is True
    )


@pytest.mark.asyncio
async def test_load_catalog_keeps_repository_order_and_converts_weights(monkeypatch) -> None:
    first = _reward(name="first", weight=Decimal("3.0000"))
    second = _reward(name="second", weight=Decimal("1.0000"), stock_remaining=1)
    captured: dict[str, object] = {}

    async def _fake_list_drawable(session, *, now_utc):
        captured["now_utc"] = now_utc
        return [first, second]

    monkeypatch.setattr(RewardsRepo, "list_drawable", _fake_list_drawable)

    catalog = await load_catalog(object(), now_utc=NOW_UTC)

    assert captured["now_utc"] == NOW_UTC
    assert [entry.name for entry in catalog] == ["first", "second"]
    assert [entry.weight for entry in catalog] == [3.0, 1.0]
    assert catalog[1].stock_remaining == 1
    assert catalog[0].reward_id == first.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("summary", "accepting_draws"),
    [
        ((3, 17), True),
        ((0, 0), False),
    ],
)
async def test_get_catalog_status_summarizes_drawable_rewards(
    monkeypatch,
    summary: tuple[int, int],
    accepting_draws: bool,
) -> None:
    async def _fake_summary(session, *, now_utc):
        assert now_utc == NOW_UTC
        return summary

    monkeypatch.setattr(RewardsRepo, "get_drawable_summary", _fake_summary)

    status = await get_catalog_status(object(), now_utc=NOW_UTC)

    assert (status.drawable_rewards, status.stock_remaining_total) == summary
    assert status.accepting_draws is accepting_draws
