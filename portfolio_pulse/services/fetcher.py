"""
Fetcher - cache-aside, rate-limited, retrying access to a fact source.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from portfolio_pulse.domain.models import FactKind
from portfolio_pulse.infrastructure.cache.ttl_cache import TTLCache
from portfolio_pulse.infrastructure.market_data.errors import (
    FetchError,
    FetchTimeout,
    ParseFailure,
    SourceUnavailable,
)
from portfolio_pulse.infrastructure.market_data.rate_limiter import RateLimiter
from portfolio_pulse.infrastructure.market_data.types import FactSource

logger = logging.getLogger(__name__)

CacheKey = Tuple[FactKind, str]


def normalize_symbol(symbol: str) -> str:
    return (symbol or "").strip().upper()


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    `attempt` is the zero-based index of the Source call that just failed.
    A logical fetch makes at most `retry_count + 1` calls.
    """
    retry_count: int = 3
    base_delay: float = 0.3

    def __post_init__(self):
        if self.retry_count < 0:
            raise ValueError("retry_count cannot be negative")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")

    @property
    def max_attempts(self) -> int:
        return self.retry_count + 1

    def backoff(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    def schedule(self) -> List[float]:
        return [self.backoff(attempt) for attempt in range(self.retry_count)]

    def should_retry(self, error: FetchError, attempt: int) -> bool:
        return error.retryable and attempt < self.retry_count


@dataclass
class _InFlight:
    task: asyncio.Task
    waiters: int = 0


class Fetcher:
    """
    Obtains one fact for one symbol.

    Cache hit -> return with no limiter or source involvement.
    Miss -> wait for limiter admission, call the source under a timeout,
    retry transient failures per `RetryPolicy`, write through to the cache.
    Concurrent fetches of the same key share one source call.
    """

    def __init__(
        self,
        source: Optional[FactSource],
        cache: TTLCache,
        limiter: RateLimiter,
        retry_policy: Optional[RetryPolicy] = None,
        fetch_timeout: float = 8.0,
        cache_ttl: float = 15.0,
        admission_poll_max: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source = source
        self.cache = cache
        self.limiter = limiter
        self.retry_policy = retry_policy or RetryPolicy()
        self.fetch_timeout = fetch_timeout
        self.cache_ttl = cache_ttl
        self.admission_poll_max = admission_poll_max
        self._sleep = sleep
        self._inflight: Dict[CacheKey, _InFlight] = {}
        self.source_calls = 0

    @property
    def source_configured(self) -> bool:
        return self.source is not None

    async def fetch(self, fact_kind: Union[FactKind, str], symbol: str):
        kind = FactKind(fact_kind)
        symbol = normalize_symbol(symbol)
        key: CacheKey = (kind, symbol)

        value, found = self.cache.get(key)
        if found:
            return value

        if self.source is None:
            raise SourceUnavailable("No market data source configured", symbol, kind.value)

        inflight = self._inflight.get(key)
        if inflight is None:
            task = asyncio.ensure_future(self._fetch_uncached(kind, symbol, key))
            inflight = _InFlight(task=task)
            self._inflight[key] = inflight
            task.add_done_callback(lambda _t, k=key, entry=inflight: self._forget(k, entry))
        return await self._join(inflight)

    def _forget(self, key: CacheKey, entry: _InFlight) -> None:
        if self._inflight.get(key) is entry:
            del self._inflight[key]

    async def _join(self, entry: _InFlight):
        entry.waiters += 1
        try:
            return await asyncio.shield(entry.task)
        except asyncio.CancelledError:
            # last interested caller gone: stop the underlying fetch too
            if entry.waiters == 1 and not entry.task.done():
                entry.task.cancel()
            raise
        finally:
            entry.waiters -= 1

    async def _fetch_uncached(self, kind: FactKind, symbol: str, key: CacheKey):
        attempt = 0
        while True:
            await self._admit(kind, symbol)
            try:
                fact = await self._call_source(kind, symbol)
            except FetchError as exc:
                exc.bind(symbol, kind.value)
                if not self.retry_policy.should_retry(exc, attempt):
                    if exc.retryable:
                        logger.warning(
                            f"{kind.value} fetch for {symbol} failed after {attempt + 1} attempts: {exc}"
                        )
                    raise
                delay = self.retry_policy.backoff(attempt)
                logger.debug(
                    f"{kind.value} fetch for {symbol} attempt {attempt + 1} failed ({exc.kind}); "
                    f"retrying in {delay:.2f}s"
                )
                attempt += 1
                await self._sleep(delay)
                continue

            self.cache.set(key, fact, self.cache_ttl)
            return fact

    async def _admit(self, kind: FactKind, symbol: str) -> None:
        throttled = False
        while not self.limiter.try_acquire():
            if not throttled:
                logger.debug(f"Rate limit reached; delaying {kind.value} fetch for {symbol}")
                throttled = True
            wait = min(max(self.limiter.time_until_available(), 0.01), self.admission_poll_max)
            await self._sleep(wait)

    async def _call_source(self, kind: FactKind, symbol: str):
        method = getattr(self.source, f"fetch_{kind.value}")
        self.source_calls += 1
        try:
            return await asyncio.wait_for(method(symbol), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise FetchTimeout(
                f"{kind.value} fetch timed out after {self.fetch_timeout}s", symbol, kind.value
            ) from exc
        except FetchError:
            raise
        except Exception as exc:
            logger.exception(f"Unexpected error from source while fetching {kind.value} for {symbol}")
            raise ParseFailure(f"Unexpected source error: {exc}", symbol, kind.value) from exc
