from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog

from voucherdraw.db.repo.rewards_repo import RewardsRepo
from voucherdraw.db.session import SessionLocal, dispose_engine
from voucherdraw.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def run_reward_inventory_audit_async() -> dict[str, int]:
    started_at = datetime.now(timezone.utc)
    async with SessionLocal() as session:
        mismatches = await RewardsRepo.list_inventory_mismatches(session)

    for reward_id, expected_issued, actual_issued in mismatches:
        logger.error(
            "reward_inventory_mismatch",
            reward_id=str(reward_id),
            expected_issued=expected_issued,
            actual_issued=actual_issued,
        )

    result = {"mismatched_rewards": len(mismatches)}
    logger.info(
        "reward_inventory_audit_finished",
        started_at=started_at.isoformat(),
        **result,
    )
    return result


async def _run_audit_on_fresh_pool() -> dict[str, int]:
    # the worker calls asyncio.run per job; asyncpg connections cannot cross loops
    await dispose_engine()
    try:
        return await run_reward_inventory_audit_async()
    finally:
        await dispose_engine()


@celery_app.task(name="voucherdraw.workers.tasks.reward_inventory.run_reward_inventory_audit")
def run_reward_inventory_audit() -> dict[str, int]:
    return asyncio.run(_run_audit_on_fresh_pool())


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "reward-inventory-audit-every-15-minutes": {
            "task": "voucherdraw.workers.tasks.reward_inventory.run_reward_inventory_audit",
            "schedule": 900.0,
            "options": {"queue": "q_normal"},
        },
    }
)
