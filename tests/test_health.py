import pytest
from fastapi.testclient import TestClient

from voucherdraw.api.routes import health as health_routes
from voucherdraw.draw.types import CatalogStatus
from voucherdraw.main import app


async def _passing_check() -> dict[str, object]:
    return {}


def _patch_checks(monkeypatch, **overrides) -> None:
    for name in ("_check_database", "_check_redis", "_check_celery_worker", "_check_draw_catalog"):
        monkeypatch.setattr(health_routes, name, overrides.get(name, _passing_check))


class _CatalogSession:
    def __init__(self, existing_tables: set[str]) -> None:
        self.existing_tables = existing_tables

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def scalar(self, statement, params):
        name = params["name"]
        return name if name in self.existing_tables else None


def test_live_ok() -> None:
    client = TestClient(app)
    response = client.get("/live")
    assert response.status_code == 200
    assert response.json() == {"status": "live"}


def test_health_ok(monkeypatch) -> None:
    _patch_checks(monkeypatch)

    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "checks": {
            "database": {"status": "ok"},
            "redis": {"status": "ok"},
            "celery": {"status": "ok"},
        },
    }


def test_health_returns_503_when_dependency_failed(monkeypatch) -> None:
    async def _failed_redis() -> dict[str, object]:
        raise ConnectionError("redis down")

    _patch_checks(monkeypatch, _check_redis=_failed_redis)

    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"]["redis"] == {"status": "failed", "error": "redis down"}
    assert payload["checks"]["database"] == {"status": "ok"}


def test_ready_reports_draw_catalog(monkeypatch) -> None:
    async def _catalog() -> dict[str, object]:
        return {"accepting_draws": True, "drawable_rewards": 2}

    _patch_checks(monkeypatch, _check_draw_catalog=_catalog)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {
            "draw_catalog": {"status": "ok", "accepting_draws": True, "drawable_rewards": 2},
        },
    }


def test_ready_ignores_broker_and_worker_outages(monkeypatch) -> None:
    async def _down() -> dict[str, object]:
        raise ConnectionError("down")

    _patch_checks(monkeypatch, _check_redis=_down, _check_celery_worker=_down)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 200
    assert set(response.json()["checks"]) == {"draw_catalog"}


def test_ready_returns_503_when_draw_schema_missing(monkeypatch) -> None:
    async def _missing_schema() -> dict[str, object]:
        raise health_routes.CheckFailed("missing tables: rewards")

    _patch_checks(monkeypatch, _check_draw_catalog=_missing_schema)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "not_ready"
    assert payload["checks"]["draw_catalog"]["error"] == "missing tables: rewards"


@pytest.mark.asyncio
async def test_draw_catalog_check_names_missing_tables(monkeypatch) -> None:
    monkeypatch.setattr(
        health_routes,
        "SessionLocal",
        lambda: _CatalogSession({"rewards", "participation_attempts"}),
    )

    with pytest.raises(health_routes.CheckFailed, match="redemption_codes, stock_adjustments"):
        await health_routes._check_draw_catalog()


@pytest.mark.asyncio
async def test_draw_catalog_check_reports_drawable_rewards(monkeypatch) -> None:
    async def _fake_status(session, *, now_utc):
        return CatalogStatus(drawable_rewards=0, stock_remaining_total=0)

    monkeypatch.setattr(
        health_routes,
        "SessionLocal",
        lambda: _CatalogSession(set(health_routes.DRAW_TABLES)),
    )
    monkeypatch.setattr(health_routes, "get_catalog_status", _fake_status)

    details = await health_routes._check_draw_catalog()

    assert details == {"accepting_draws": False, "drawable_rewards": 0}
