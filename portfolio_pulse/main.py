"""
FastAPI Main Application with Scheduler
Wires the aggregation pipeline, the periodic refresh and the HTTP routes
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncGenerator, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portfolio_pulse.api.routes import health, market_data, portfolio
from portfolio_pulse.config import Settings, settings as default_settings
from portfolio_pulse.core.config import AggregationConfig
from portfolio_pulse.core.logging import setup_logging
from portfolio_pulse.domain.models import Instrument
from portfolio_pulse.domain.services.holdings_loader import load_holdings
from portfolio_pulse.infrastructure.cache.ttl_cache import TTLCache
from portfolio_pulse.infrastructure.market_data.rate_limiter import RateLimiter
from portfolio_pulse.infrastructure.market_data.source_factory import get_fact_source
from portfolio_pulse.infrastructure.market_data.types import FactSource
from portfolio_pulse.scheduler.scheduler import build_scheduler
from portfolio_pulse.services.fetcher import Fetcher, RetryPolicy
from portfolio_pulse.services.orchestrator import PortfolioOrchestrator
from portfolio_pulse.services.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)

_UNSET = object()


@dataclass
class Pipeline:
    cache: TTLCache
    limiter: RateLimiter
    fetcher: Fetcher
    orchestrator: PortfolioOrchestrator
    service: PortfolioService


def build_pipeline(
    config: AggregationConfig,
    source: Optional[FactSource],
    instruments: List[Instrument],
) -> Pipeline:
    """
    Construct the shared cache and limiter once and hand them to the
    fetcher; everything downstream receives its collaborators explicitly.
    """
    cache = TTLCache(default_ttl=config.cache_ttl, max_entries=config.cache_max_entries)
    limiter = RateLimiter(
        max_requests=config.rate_limit_max_requests,
        window_seconds=config.rate_limit_window,
    )
    fetcher = Fetcher(
        source=source,
        cache=cache,
        limiter=limiter,
        retry_policy=RetryPolicy(retry_count=config.retry_count, base_delay=config.retry_base_delay),
        fetch_timeout=config.fetch_timeout,
        cache_ttl=config.cache_ttl,
        admission_poll_max=config.admission_poll_max,
    )
    orchestrator = PortfolioOrchestrator(
        fetcher=fetcher,
        stagger_delay=config.stagger_delay,
        pass_timeout=config.pass_timeout,
    )
    service = PortfolioService(orchestrator=orchestrator, instruments=instruments)
    return Pipeline(cache=cache, limiter=limiter, fetcher=fetcher, orchestrator=orchestrator, service=service)


def create_app(
    app_settings: Optional[Settings] = None,
    source=_UNSET,
    instruments: Optional[List[Instrument]] = None,
) -> FastAPI:
    """
    Build the application. `source` and `instruments` override what the
    settings would produce (None for `source` means no source configured).
    """
    app_settings = app_settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        logger.info("Starting Portfolio Pulse")

        config = AggregationConfig.from_settings(app_settings)
        holdings = instruments
        if holdings is None:
            holdings = load_holdings(Path(app_settings.HOLDINGS_FILE))
        logger.info(f"Loaded {len(holdings)} holdings")

        fact_source = get_fact_source(app_settings) if source is _UNSET else source
        if fact_source is None:
            logger.warning("Running without a market data source; rows will carry no prices")
        else:
            logger.info(f"Market data source: {getattr(fact_source, 'name', type(fact_source).__name__)}")

        pipeline = build_pipeline(config, fact_source, holdings)
        app.state.pipeline = pipeline
        app.state.fetcher = pipeline.fetcher
        app.state.portfolio_service = pipeline.service
        app.state.snapshot_max_age = float(app_settings.REFRESH_INTERVAL_SECONDS)

        scheduler = None
        if app_settings.SCHEDULER_ENABLED:
            scheduler = build_scheduler(
                pipeline.service,
                app_settings.REFRESH_INTERVAL_SECONDS,
                cache=pipeline.cache,
                sweep_interval_seconds=app_settings.CACHE_SWEEP_INTERVAL_SECONDS,
            )
            scheduler.start()
            logger.info(f"Refresh scheduler started (every {app_settings.REFRESH_INTERVAL_SECONDS}s)")

        try:
            yield
        finally:
            logger.info("Shutting down Portfolio Pulse")
            if scheduler is not None:
                scheduler.shutdown(wait=False)
            close = getattr(fact_source, "aclose", None)
            if close is not None:
                await close()

    app = FastAPI(
        title="Portfolio Pulse",
        description="Aggregated portfolio snapshot from rate-limited market data sources",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(health.router, tags=["Health"])
    app.include_router(portfolio.router, prefix="/api/v1/portfolio", tags=["Portfolio"])
    app.include_router(market_data.router, prefix="/api/v1/market-data", tags=["Market Data"])
    return app


setup_logging(default_settings.LOG_LEVEL)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "portfolio_pulse.main:app",
        host=default_settings.API_HOST,
        port=default_settings.API_PORT,
    )
