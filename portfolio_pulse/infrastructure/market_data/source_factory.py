"""
Fact source factory (config-driven).
"""

from __future__ import annotations

import logging
from typing import List, Optional

from portfolio_pulse.config import Settings
from portfolio_pulse.infrastructure.market_data.http_source import HttpBackendSource
from portfolio_pulse.infrastructure.market_data.source_chain import ChainedSource, NamedSource
from portfolio_pulse.infrastructure.market_data.types import FactSource
from portfolio_pulse.infrastructure.market_data.yfinance_source import YFinanceSource

logger = logging.getLogger(__name__)

DISABLED_NAMES = {"", "none", "off", "disabled"}


def _build_source(name: str, settings: Settings) -> FactSource:
    name = (name or "").lower()
    if name == "backend":
        base_url = (settings.BACKEND_URL or "").strip()
        if not base_url:
            raise ValueError("BACKEND_URL missing")
        return HttpBackendSource(
            base_url=base_url,
            api_key=settings.BACKEND_API_KEY,
            timeout_seconds=float(settings.FETCH_TIMEOUT_SECONDS),
        )
    if name == "yfinance":
        return YFinanceSource()
    raise ValueError(f"Unknown market data provider: {name}")


def get_fact_source(settings: Settings) -> Optional[FactSource]:
    """
    Build the primary source plus fallbacks.

    Returns None when nothing usable is configured; callers then run in the
    explicit "source unavailable" mode instead of inventing prices.
    """
    provider_name = (settings.MARKET_DATA_PROVIDER or "").lower()
    names = [provider_name] + [
        fallback.lower() for fallback in settings.FALLBACK_PROVIDERS
        if fallback and fallback.lower() != provider_name
    ]

    sources: List[NamedSource] = []
    for name in names:
        if name in DISABLED_NAMES:
            continue
        try:
            sources.append(NamedSource(name, _build_source(name, settings)))
        except ValueError as exc:
            logger.warning(f"Skipping market data provider '{name}': {exc}")

    if not sources:
        logger.warning("No valid market data providers configured")
        return None
    if len(sources) == 1:
        return sources[0].source
    return ChainedSource(sources)
