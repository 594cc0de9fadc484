"""
Fact source protocol for type hints.
"""

from __future__ import annotations

from typing import Protocol

from portfolio_pulse.domain.models import EarningsFact, QuoteFact, RatioFact


class FactSource(Protocol):
    """
    One external provider of per-symbol facts.

    Implementations raise subclasses of
    `portfolio_pulse.infrastructure.market_data.errors.FetchError`
    and never return placeholder values on failure.
    """

    name: str

    async def fetch_quote(self, symbol: str) -> QuoteFact:
        ...

    async def fetch_ratio(self, symbol: str) -> RatioFact:
        ...

    async def fetch_earnings(self, symbol: str) -> EarningsFact:
        ...
