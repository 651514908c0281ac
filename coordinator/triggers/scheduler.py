"""
Periodic escalation sweep.

Runs run_scheduled_coordination_sweep on a fixed interval (hourly by
default) inside the host application's event loop. The sweep itself is
blocking storage work, so it runs in a worker thread.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from coordinator.config import COORDINATION_SWEEP_INTERVAL_MINUTES
from coordinator.triggers.models import ProcessResult
from coordinator.triggers.store import CoordinationStore
from coordinator.triggers.sweep import run_scheduled_coordination_sweep

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], CoordinationStore]

_scheduler_running = False
_scheduler_task: Optional[asyncio.Task] = None


def run_sweep_once(store_factory: StoreFactory, project_id: Optional[str] = None) -> ProcessResult:
    """Run a single sweep, stamped with the current UTC time."""
    store = store_factory()
    now = datetime.now(timezone.utc)
    result = run_scheduled_coordination_sweep(store, now, project_id=project_id)
    logger.info(
        f"Sweep finished: {result.created_triggers} escalation(s) created, "
        f"{result.failed_events} failed"
    )
    return result


async def _scheduler_loop(store_factory: StoreFactory, interval_minutes: int):
    """Main scheduler loop."""
    logger.info(f"Coordination sweep scheduler started (every {interval_minutes} min)")

    while _scheduler_running:
        try:
            await asyncio.to_thread(run_sweep_once, store_factory)

            await asyncio.sleep(interval_minutes * 60)

        except asyncio.CancelledError:
            logger.info("Scheduler cancelled")
            break
        except Exception as e:
            logger.error(f"Scheduler error: {e}", exc_info=True)
            await asyncio.sleep(60)  # Wait 1 minute on error

    logger.info("Coordination sweep scheduler stopped")


def start_scheduler(
    store_factory: StoreFactory,
    interval_minutes: int = COORDINATION_SWEEP_INTERVAL_MINUTES
) -> Optional[asyncio.Task]:
    """Start the background sweep in the running event loop."""
    global _scheduler_running, _scheduler_task

    if _scheduler_running:
        logger.warning("Scheduler already running")
        return _scheduler_task

    _scheduler_running = True
    loop = asyncio.get_running_loop()
    _scheduler_task = loop.create_task(_scheduler_loop(store_factory, interval_minutes))
    return _scheduler_task


def stop_scheduler():
    """Stop the background sweep."""
    global _scheduler_running, _scheduler_task

    if not _scheduler_running:
        return

    _scheduler_running = False
    if _scheduler_task:
        _scheduler_task.cancel()
        _scheduler_task = None
    logger.info("Scheduler stop requested")


def is_scheduler_running() -> bool:
    return _scheduler_running
