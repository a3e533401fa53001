from __future__ import annotations

import asyncio

import structlog

from voucherdraw.core.config import get_settings
from voucherdraw.draw.types import AllocationResult
from voucherdraw.workers.tasks.draw_notifications import (
    dispatch_draw_notification,
    dispatch_draw_notification_async,
)

logger = structlog.get_logger(__name__)


def _is_celery_task(task_obj: object) -> bool:
    return type(task_obj).__module__.startswith("celery.")


def build_notification_payload(
    result: AllocationResult,
    *,
    participant_id: str,
    device_id: str,
) -> dict[str, object]:
    payload = result.to_payload()
    payload["participant_id"] = participant_id
    payload["device_id"] = device_id
    if result.loss_reason is not None:
        payload["loss_reason"] = result.loss_reason
    return payload


async def enqueue_draw_notification(
    result: AllocationResult,
    *,
    participant_id: str,
    device_id: str,
) -> bool:
    payload = build_notification_payload(
        result,
        participant_id=participant_id,
        device_id=device_id,
    )
    timeout_seconds = get_settings().draw_notification_enqueue_timeout_seconds

    def enqueue_call() -> object:
        return dispatch_draw_notification.delay(payload=payload)

    try:
        if _is_celery_task(dispatch_draw_notification):
            await asyncio.wait_for(
                asyncio.to_thread(enqueue_call),
                timeout=timeout_seconds,
            )
        else:
            await dispatch_draw_notification_async(payload=payload)
        return True
    except asyncio.TimeoutError:
        logger.warning(
            "draw_notification_enqueue_timeout",
            attempt_id=str(result.attempt_id),
            enqueue_timeout_seconds=timeout_seconds,
        )
        return False
    except Exception as exc:
        logger.warning(
            "draw_notification_enqueue_failed",
            attempt_id=str(result.attempt_id),
            error_type=type(exc).__name__,
        )
        return False
