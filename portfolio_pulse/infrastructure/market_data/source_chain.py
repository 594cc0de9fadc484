"""
Source chain - try primary, then fallbacks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List

from portfolio_pulse.domain.models import EarningsFact, QuoteFact, RatioFact
from portfolio_pulse.infrastructure.market_data.errors import FetchError
from portfolio_pulse.infrastructure.market_data.types import FactSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NamedSource:
    name: str
    source: FactSource


class ChainedSource:
    """
    Ask each source in order; the first answer wins.

    When every source fails, the first retryable error is raised if any
    source reported one, otherwise the last source's error, so the
    fetcher's retry policy still sees transient failures.
    """

    def __init__(self, sources: List[NamedSource]):
        if not sources:
            raise ValueError("ChainedSource needs at least one source")
        self.sources = sources
        self.name = "chain(" + ",".join(named.name for named in sources) + ")"
        self.last_sources: Dict[str, Dict[str, str]] = {"quote": {}, "ratio": {}, "earnings": {}}

    def get_last_sources(self) -> Dict[str, Dict[str, str]]:
        return {kind: dict(served) for kind, served in self.last_sources.items()}

    async def _first_answer(self, fact_kind: str, symbol: str):
        last_exc: FetchError | None = None
        retryable_exc: FetchError | None = None
        for named in self.sources:
            method = getattr(named.source, f"fetch_{fact_kind}")
            try:
                fact = await method(symbol)
            except FetchError as exc:
                logger.debug(f"{named.name} could not serve {fact_kind} for {symbol}: {exc.kind}")
                last_exc = exc
                if exc.retryable and retryable_exc is None:
                    retryable_exc = exc
                continue
            self.last_sources[fact_kind][symbol] = named.name
            return fact
        # a transient failure anywhere keeps the fetch retryable
        raise (retryable_exc or last_exc).bind(symbol, fact_kind)

    async def fetch_quote(self, symbol: str) -> QuoteFact:
        return await self._first_answer("quote", symbol)

    async def fetch_ratio(self, symbol: str) -> RatioFact:
        return await self._first_answer("ratio", symbol)

    async def fetch_earnings(self, symbol: str) -> EarningsFact:
        return await self._first_answer("earnings", symbol)

    async def aclose(self) -> None:
        for named in self.sources:
            close = getattr(named.source, "aclose", None)
            if close is not None:
                await close()
