import pytest

from portfolio_pulse.infrastructure.cache.ttl_cache import TTLCache
from portfolio_pulse.scheduler.scheduler import (
    CACHE_SWEEP_JOB_ID,
    REFRESH_JOB_ID,
    build_scheduler,
    refresh_portfolio_job,
    sweep_cache_job,
)


class StubService:
    def __init__(self, error=None):
        self.error = error
        self.refreshes = 0

    async def refresh(self):
        self.refreshes += 1
        if self.error:
            raise self.error


def test_build_scheduler_registers_refresh_job():
    scheduler = build_scheduler(StubService(), interval_seconds=15)

    job = scheduler.get_job(REFRESH_JOB_ID)
    assert job is not None
    assert job.trigger.interval.total_seconds() == 15
    assert job.max_instances == 1
    assert not scheduler.running
    assert scheduler.get_job(CACHE_SWEEP_JOB_ID) is None


def test_cache_sweep_job_registered_with_cache():
    scheduler = build_scheduler(StubService(), cache=TTLCache(), sweep_interval_seconds=60)

    job = scheduler.get_job(CACHE_SWEEP_JOB_ID)
    assert job is not None
    assert job.trigger.interval.total_seconds() == 60


def test_sweep_job_reclaims_expired_entries(clock):
    cache = TTLCache(clock=clock)
    cache.set("old", 1, ttl=1)
    cache.set("fresh", 2, ttl=100)
    clock.advance(5)

    assert sweep_cache_job(cache) == 1
    assert len(cache) == 1


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        build_scheduler(StubService(), interval_seconds=0)
    with pytest.raises(ValueError):
        build_scheduler(StubService(), cache=TTLCache(), sweep_interval_seconds=0)


@pytest.mark.asyncio
async def test_refresh_job_logs_failures(caplog):
    service = StubService(error=RuntimeError("boom"))

    await refresh_portfolio_job(service)

    assert service.refreshes == 1
    assert "Scheduled portfolio refresh failed" in caplog.text
