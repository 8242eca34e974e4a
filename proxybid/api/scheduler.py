"""APScheduler setup for the auction lifecycle loop."""

import asyncio
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from proxybid.core.notifications import get_dispatcher
from proxybid.models.operations.lifecycle import lifecycle_run_tick
from proxybid.utils import log

logger = log.get_logger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None
_tick_lock = asyncio.Lock()
_max_concurrency = 8


async def lifecycle_tick_job():
    """Run one lifecycle tick: activate, close, finalize, no-bid notify."""
    async with _tick_lock:
        try:
            report = await lifecycle_run_tick(dispatcher=get_dispatcher(), concurrency=_max_concurrency)
        except Exception as e:
            logger.error(f"Lifecycle tick failed: {e}", exc_info=True)
            return
        if report.failed:
            logger.warning(f"Lifecycle tick finished with {report.failed} failed auction(s)")


def init_scheduler(tick_seconds: int = 15, max_concurrency: int = 8) -> AsyncIOScheduler:
    """Start the APScheduler with the lifecycle tick job."""
    global _scheduler, _max_concurrency
    _max_concurrency = max_concurrency
    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        lifecycle_tick_job,
        trigger=IntervalTrigger(seconds=tick_seconds),
        id="auction_lifecycle",
        name="Auction Lifecycle Tick",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    _scheduler.start()
    logger.info(f"APScheduler started with auction lifecycle tick every {tick_seconds}s")
    return _scheduler


async def shutdown_scheduler():
    """Stop scheduling new ticks and wait for the in-flight one to finish."""
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        async with _tick_lock:
            pass
        logger.info("APScheduler shut down")
