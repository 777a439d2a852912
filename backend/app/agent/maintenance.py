"""
Maintenance Loop - periodic housekeeping for conversations and the ledger.

Each sweep:
1. Deactivates conversations idle longer than CONVERSATION_STALE_MINUTES
   (the customer starts fresh next time instead of mid-flow)
2. Deletes inactive conversations older than INACTIVE_CONVERSATION_RETENTION_HOURS
3. Deletes delivery-ledger entries older than MESSAGE_RETENTION_DAYS
   (well beyond WhatsApp's redelivery window)

Runs in the same process as FastAPI; the database work goes to the thread pool.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Dict, Optional

from app.core.config import settings
from app.services.conversation_store import ConversationStore
from app.services.delivery_ledger import DeliveryLedger

logger = logging.getLogger(__name__)


def run_maintenance(store: ConversationStore, ledger: DeliveryLedger) -> Dict[str, int]:
    """
    One sweep. Each task is isolated so one failure doesn't skip the others.

    Returns:
        Rows affected per task
    """
    tasks = {
        "stale_deactivated": lambda: store.deactivate_stale(
            timedelta(minutes=settings.CONVERSATION_STALE_MINUTES)
        ),
        "inactive_purged": lambda: store.purge_inactive(
            timedelta(hours=settings.INACTIVE_CONVERSATION_RETENTION_HOURS)
        ),
        "ledger_purged": lambda: ledger.purge_expired(
            timedelta(days=settings.MESSAGE_RETENTION_DAYS)
        ),
    }
    results: Dict[str, int] = {}
    for name, task in tasks.items():
        try:
            results[name] = task()
        except Exception as e:
            logger.error(f"[Maintenance] {name} failed: {e}")
            results[name] = 0

    if any(results.values()):
        logger.info(f"[Maintenance] Sweep done: {results}")
    else:
        logger.debug("[Maintenance] Nothing to clean up")
    return results


# ============================================================================
# BACKGROUND TASK - Runs in asyncio loop alongside FastAPI
# ============================================================================

_maintenance_running = False
_maintenance_task: Optional[asyncio.Task] = None


async def _maintenance_loop(store: ConversationStore, ledger: DeliveryLedger, interval: int):
    global _maintenance_running
    _maintenance_running = True

    logger.info(f"[Maintenance] Loop started. Interval: {interval}s")

    # Let the server finish starting
    await asyncio.sleep(10)

    while _maintenance_running:
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, run_maintenance, store, ledger)
        except Exception as e:
            logger.error(f"[Maintenance] Loop error: {e}")

        await asyncio.sleep(interval)


def start_maintenance(store: ConversationStore, ledger: DeliveryLedger, interval: Optional[int] = None):
    """Start the background sweep. Called from FastAPI lifespan."""
    global _maintenance_task
    try:
        _maintenance_task = asyncio.create_task(
            _maintenance_loop(store, ledger, interval or settings.SWEEP_INTERVAL_SECONDS)
        )
        logger.info("[Maintenance] Scheduler initialized")
    except Exception as e:
        logger.error(f"[Maintenance] Failed to start scheduler: {e}")


def stop_maintenance():
    """Stop the sweep. Called from FastAPI shutdown."""
    global _maintenance_running, _maintenance_task
    _maintenance_running = False
    if _maintenance_task is not None:
        _maintenance_task.cancel()
        _maintenance_task = None
    logger.info("[Maintenance] Scheduler stopped")
