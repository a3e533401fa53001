from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from voucherdraw.core.config import get_settings
from voucherdraw.db.models.participation_attempts import ParticipationAttempt
from voucherdraw.db.models.redemption_codes import RedemptionCode
from voucherdraw.db.models.rewards import Reward
from voucherdraw.db.models.stock_adjustments import StockAdjustment
from voucherdraw.db.session import SessionLocal
from voucherdraw.draw.catalog import get_catalog_status
from voucherdraw.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)

DRAW_TABLES = (
    Reward.__tablename__,
    RedemptionCode.__tablename__,
    ParticipationAttempt.__tablename__,
    StockAdjustment.__tablename__,
)

Check = Callable[[], Awaitable[dict[str, Any]]]


class CheckFailed(Exception):
    pass


async def _check_database() -> dict[str, Any]:
    async with SessionLocal() as session:
        await session.execute(text("SELECT 1"))
    return {}


async def _check_redis() -> dict[str, Any]:
    redis_client = Redis.from_url(get_settings().redis_url)
    try:
        pong = await redis_client.ping()
    finally:
        await redis_client.aclose()
    if pong is not True:
        raise CheckFailed(f"unexpected redis ping response: {pong!r}")
    return {}


def _ping_celery_workers() -> dict[str, Any]:
    inspector = celery_app.control.inspect(timeout=1.0)
    if inspector is None:
        raise CheckFailed("celery inspector is unavailable")
    replies = inspector.ping() or {}
    if not replies:
        raise CheckFailed("no celery workers responded to ping")
    return {"workers": len(replies)}


async def _check_celery_worker() -> dict[str, Any]:
    return await asyncio.to_thread(_ping_celery_workers)


async def _check_draw_catalog() -> dict[str, Any]:
    """Confirm the draw tables are migrated and report what can be drawn.

    An empty catalog is still ready: draws answer with a no-stock rejection.
    """
    async with SessionLocal() as session:
        missing: list[str] = []
        for table_name in DRAW_TABLES:
            found = await session.scalar(text("SELECT to_regclass(:name)"), {"name": table_name})
            if found is None:
                missing.append(table_name)
        if missing:
            raise CheckFailed(f"missing tables: {', '.join(missing)}")
        catalog = await get_catalog_status(session, now_utc=datetime.now(timezone.utc))
    return {
        "accepting_draws": catalog.accepting_draws,
        "drawable_rewards": catalog.drawable_rewards,
    }


async def _run_check(name: str, check: Check) -> dict[str, Any]:
    try:
        details = await check()
    except Exception as exc:
        logger.warning("health_check_failed", check=name, error_type=type(exc).__name__)
        return {"status": "failed", "error": str(exc)}
    return {"status": "ok", **details}


async def _run_checks(checks: dict[str, Check]) -> dict[str, dict[str, Any]]:
    results = await asyncio.gather(*(_run_check(name, check) for name, check in checks.items()))
    return dict(zip(checks, results))


def _report(checks: dict[str, dict[str, Any]], *, passed: str, failed: str) -> JSONResponse:
    ok = all(check["status"] == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": passed if ok else failed, "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health")
async def health() -> JSONResponse:
    checks = await _run_checks(
        {
            "database": _check_database,
            "redis": _check_redis,
            "celery": _check_celery_worker,
        }
    )
    return _report(checks, passed="ok", failed="degraded")


@router.get("/ready")
async def ready() -> JSONResponse:
    # redis only brokers the audit worker; draws depend on postgres alone
    checks = await _run_checks({"draw_catalog": _check_draw_catalog})
    return _report(checks, passed="ready", failed="not_ready")
