"""Outbound notifications to the reminder/messaging automation.

Calls are fire-and-forget: a slow or failing endpoint never blocks or fails
the request that triggered it.
"""

import asyncio
from typing import Any, Dict, Iterable, Optional, Set

import httpx

from agenda.config import settings
from agenda.utils.logging import get_logger

logger = get_logger("services.reminder_webhook")

_pending: Set[asyncio.Task] = set()


async def post_event(payload: Dict[str, Any], url: Optional[str] = None) -> bool:
    """POST ``payload`` to the webhook. Returns whether it was accepted."""
    url = url or settings.reminder_webhook_url
    if not url:
        return False

    timeout = httpx.Timeout(settings.reminder_webhook_timeout, connect=5.0)
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload)
    except httpx.RequestError as exc:
        logger.warning("reminder_webhook_failed", url=url, error=str(exc))
        return False

    if response.status_code >= 400:
        logger.warning(
            "reminder_webhook_bad_status",
            url=url,
            status_code=response.status_code,
        )
        return False

    logger.info("reminder_webhook_sent", event=payload.get("event"))
    return True


def _schedule(payload: Dict[str, Any]) -> Optional[asyncio.Task]:
    if not settings.reminder_webhook_url:
        return None
    task = asyncio.create_task(post_event(payload))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


def notify_appointments_changed(
    event: str,
    user_id: int,
    appointment_ids: Iterable[int],
) -> Optional[asyncio.Task]:
    return _schedule(
        {
            "event": event,
            "user_id": user_id,
            "appointment_ids": list(appointment_ids),
        }
    )


def notify_instance_disconnected(instance: str) -> Optional[asyncio.Task]:
    """Tell the automation that a messaging instance dropped.

    Only the instance id is sent.
    """
    return _schedule({"instance": instance})
