import asyncio
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pytest

from portfolio_pulse.domain.models import EarningsFact, Instrument, QuoteFact, RatioFact
from portfolio_pulse.infrastructure.cache.ttl_cache import TTLCache
from portfolio_pulse.infrastructure.market_data.errors import FetchError, NotFound
from portfolio_pulse.infrastructure.market_data.rate_limiter import RateLimiter
from portfolio_pulse.services.fetcher import Fetcher, RetryPolicy

OBSERVED_AT = datetime(2026, 1, 5, 15, 30, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource:
    """
    Deterministic `FactSource` double.

    failures maps (kind, symbol) to either an error class (raised on every
    call) or a list of error classes / None consumed one per call, where
    None means "answer normally".
    """

    name = "fake"

    def __init__(
        self,
        prices: Dict[str, str],
        previous_closes: Optional[Dict[str, str]] = None,
        ratios: Optional[Dict[str, Optional[str]]] = None,
        failures: Optional[Dict[Tuple[str, str], object]] = None,
        delays: Optional[Dict[Tuple[str, str], float]] = None,
    ):
        self.prices = {k: Decimal(v) for k, v in prices.items()}
        self.previous_closes = {k: Decimal(v) for k, v in (previous_closes or {}).items()}
        self.ratios = ratios or {}
        self.failures = dict(failures or {})
        self.delays = delays or {}
        self.calls: List[Tuple[str, str, float]] = []

    def calls_for(self, kind: str, symbol: Optional[str] = None) -> int:
        return sum(1 for k, s, _ in self.calls if k == kind and (symbol is None or s == symbol))

    async def _serve(self, kind: str, symbol: str) -> None:
        self.calls.append((kind, symbol, time.monotonic()))
        delay = self.delays.get((kind, symbol), 0.0)
        if delay:
            await asyncio.sleep(delay)
        failure = self.failures.get((kind, symbol))
        if isinstance(failure, list):
            failure = failure.pop(0) if failure else None
        if failure is not None:
            if isinstance(failure, FetchError):
                raise failure
            if isinstance(failure, type) and issubclass(failure, FetchError):
                raise failure(f"scripted {kind} failure for {symbol}", symbol, kind)
            raise failure
        if symbol not in self.prices:
            raise NotFound(f"unknown symbol {symbol}", symbol, kind)

    async def fetch_quote(self, symbol: str) -> QuoteFact:
        await self._serve("quote", symbol)
        price = self.prices[symbol]
        prev = self.previous_closes.get(symbol, price)
        change = price - prev
        return QuoteFact(
            current_price=price,
            previous_close=prev,
            change=change,
            change_percent=(change / prev) * Decimal("100") if prev else None,
            volume=1_000_000,
            observed_at=OBSERVED_AT,
        )

    async def fetch_ratio(self, symbol: str) -> RatioFact:
        await self._serve("ratio", symbol)
        pe = self.ratios.get(symbol, "25")
        return RatioFact(pe_ratio=Decimal(pe) if pe is not None else None, observed_at=OBSERVED_AT)

    async def fetch_earnings(self, symbol: str) -> EarningsFact:
        await self._serve("earnings", symbol)
        return EarningsFact(date="2025-10-30", eps=Decimal("1.50"), revenue=None, observed_at=OBSERVED_AT)


def make_instrument(symbol: str, purchase_price: str, shares: str, sector: str = "Technology") -> Instrument:
    return Instrument(
        symbol=symbol,
        company_name=f"{symbol} Corp",
        sector=sector,
        exchange="NASDAQ",
        purchase_price=Decimal(purchase_price),
        share_count=Decimal(shares),
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def source_factory():
    return FakeSource


@pytest.fixture
def instrument_factory():
    return make_instrument


@pytest.fixture
def sleeps():
    """Recorded delays of a non-blocking sleep double."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)
        await asyncio.sleep(0)

    return _sleep


@pytest.fixture
def fetcher_factory():
    def _build(
        source,
        cache: Optional[TTLCache] = None,
        limiter: Optional[RateLimiter] = None,
        retry_count: int = 3,
        base_delay: float = 0.0,
        fetch_timeout: float = 1.0,
        cache_ttl: float = 15.0,
        sleep=None,
    ) -> Fetcher:
        kwargs = {}
        if sleep is not None:
            kwargs["sleep"] = sleep
        return Fetcher(
            source=source,
            cache=cache if cache is not None else TTLCache(default_ttl=cache_ttl),
            limiter=limiter if limiter is not None else RateLimiter(max_requests=1000, window_seconds=60),
            retry_policy=RetryPolicy(retry_count=retry_count, base_delay=base_delay),
            fetch_timeout=fetch_timeout,
            cache_ttl=cache_ttl,
            admission_poll_max=0.05,
            **kwargs,
        )

    return _build
