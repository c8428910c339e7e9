"""Best-effort notifications to a human by actor id.

Delivery runs as a detached asyncio task after the financial transaction has
committed. Failures are logged and dropped; nothing here can undo a mutation.
"""
import asyncio
import httpx
import logging
from typing import Optional, Set
from fieldledger.core.config import settings
from fieldledger.core.metrics import notification_deliveries

logger = logging.getLogger(__name__)

_pending: Set[asyncio.Task] = set()


async def deliver(recipient_id: Optional[int], event: str, payload: dict, retries: int | None = None) -> bool:

    if recipient_id is None:
        logger.debug(f"Notification {event} has no recipient, skipped")
        return False

    if not settings.NOTIFY_WEBHOOK_URL:
        logger.debug(f"Notification webhook not configured, dropping {event} for {recipient_id}")
        return False

    if retries is None:
        retries = settings.NOTIFY_RETRIES

    body = {"recipient_id": recipient_id, "event": event, "payload": payload}
    backoff = 1.0

    for attempt in range(1, retries + 1):
        try:
            async with httpx.AsyncClient(timeout=settings.NOTIFY_TIMEOUT) as client:
                response = await client.post(settings.NOTIFY_WEBHOOK_URL, json=body)

                if 200 <= response.status_code < 300:
                    notification_deliveries.labels(status="delivered").inc()
                    logger.info(f"Notification {event} delivered to {recipient_id}")
                    return True
                else:
                    logger.warning(
                        f"Notification delivery failed (attempt {attempt}/{retries}): "
                        f"Status {response.status_code} for {event} to {recipient_id}"
                    )
        except httpx.TimeoutException:
            logger.warning(
                f"Notification timeout (attempt {attempt}/{retries}) for {event} to {recipient_id}"
            )
        except Exception as e:
            logger.warning(
                f"Notification delivery error (attempt {attempt}/{retries}): {e} "
                f"for {event} to {recipient_id}"
            )

        if attempt < retries:
            await asyncio.sleep(backoff)
            backoff *= 2.0

    notification_deliveries.labels(status="failed").inc()
    logger.error(f"Notification {event} to {recipient_id} failed after {retries} attempts")
    return False


def _finished(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Notification task crashed: {exc}")


def dispatch(recipient_id: Optional[int], event: str, payload: dict) -> None:
    """Schedule delivery without waiting for it."""
    try:
        task = asyncio.get_running_loop().create_task(deliver(recipient_id, event, payload))
    except RuntimeError:
        logger.warning(f"No running event loop, notification {event} dropped")
        return
    _pending.add(task)
    task.add_done_callback(_finished)


async def drain() -> None:
    """Wait for in-flight notifications, used at shutdown."""
    if _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
