"""
SCHEDULER BOOTSTRAP

Periodic snapshot refresh and cache sweep on APScheduler's asyncio scheduler.
Scheduler is orchestration-only and contains no business logic.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from portfolio_pulse.infrastructure.cache.ttl_cache import TTLCache
from portfolio_pulse.services.portfolio_service import PortfolioService

_logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "portfolio_refresh_job"
CACHE_SWEEP_JOB_ID = "cache_sweep_job"


async def refresh_portfolio_job(service: PortfolioService) -> None:
    try:
        snapshot = await service.refresh()
    except Exception:
        _logger.exception("Scheduled portfolio refresh failed")
        return
    _logger.debug(
        f"Scheduled refresh done: {snapshot.summary.number_of_stocks} rows, "
        f"{snapshot.summary.stale_count} stale"
    )


def sweep_cache_job(cache: TTLCache) -> int:
    removed = cache.sweep()
    if removed:
        _logger.debug(f"Cache sweep removed {removed} expired entries")
    return removed


def build_scheduler(
    service: PortfolioService,
    interval_seconds: int = 15,
    cache: Optional[TTLCache] = None,
    sweep_interval_seconds: int = 60,
) -> AsyncIOScheduler:
    """
    Create the scheduler with the refresh job (and the cache sweep job when
    a cache is given) registered. The scheduler is not started.
    """
    if interval_seconds < 1:
        raise ValueError("Refresh interval must be at least 1 second")
    if sweep_interval_seconds < 1:
        raise ValueError("Sweep interval must be at least 1 second")

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        refresh_portfolio_job,
        trigger=IntervalTrigger(seconds=interval_seconds),
        args=[service],
        id=REFRESH_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if cache is not None:
        scheduler.add_job(
            sweep_cache_job,
            trigger=IntervalTrigger(seconds=sweep_interval_seconds),
            args=[cache],
            id=CACHE_SWEEP_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    return scheduler
