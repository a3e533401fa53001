from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from voucherdraw.core.config import get_settings
from voucherdraw.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)


async def dispatch_draw_notification_async(*, payload: dict[str, Any]) -> dict[str, int]:
    settings = get_settings()
    webhook_url = (settings.draw_notification_webhook_url or "").strip()
    attempt_id = payload.get("attempt_id")
    if not webhook_url:
        logger.info("draw_notification_skipped", attempt_id=attempt_id, reason="webhook_not_configured")
        return {"delivered": 0, "skipped": 1}

    try:
        async with httpx.AsyncClient(timeout=settings.draw_notification_timeout_seconds) as client:
            response = await client.post(webhook_url, json=payload)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning(
            "draw_notification_delivery_failed",
            attempt_id=attempt_id,
            error_type=type(exc).__name__,
        )
        return {"delivered": 0, "skipped": 0}

    logger.info("draw_notification_delivered", attempt_id=attempt_id, outcome=payload.get("outcome"))
    return {"delivered": 1, "skipped": 0}


@celery_app.task(name="voucherdraw.workers.tasks.draw_notifications.dispatch_draw_notification")
def dispatch_draw_notification(*, payload: dict[str, Any]) -> dict[str, int]:
    return asyncio.run(dispatch_draw_notification_async(payload=payload))
