import asyncio
import time

import pytest

from portfolio_pulse.domain.models import FactKind
from portfolio_pulse.infrastructure.cache.ttl_cache import TTLCache
from portfolio_pulse.infrastructure.market_data.errors import (
    FetchTimeout,
    NotFound,
    ParseFailure,
    SourceUnavailable,
    TransientNetworkError,
    UpstreamRejected,
)
from portfolio_pulse.infrastructure.market_data.rate_limiter import RateLimiter
from portfolio_pulse.services.fetcher import RetryPolicy


class TestRetryPolicy:

    def test_backoff_schedule_doubles(self):
        policy = RetryPolicy(retry_count=3, base_delay=0.3)
        assert policy.schedule() == pytest.approx([0.3, 0.6, 1.2])
        assert policy.max_attempts == 4

    def test_only_retryable_errors_within_budget(self):
        policy = RetryPolicy(retry_count=2)
        transient = TransientNetworkError("reset")
        assert policy.should_retry(transient, 0)
        assert policy.should_retry(UpstreamRejected("429"), 1)
        assert not policy.should_retry(transient, 2)
        assert not policy.should_retry(ParseFailure("garbage"), 0)
        assert not policy.should_retry(NotFound("nope"), 0)

    def test_rejects_negative_values(self):
        with pytest.raises(ValueError):
            RetryPolicy(retry_count=-1)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=-0.1)


@pytest.mark.asyncio
async def test_cache_hit_skips_source_and_limiter(source_factory, fetcher_factory):
    source = source_factory({"AAPL": "165"})
    limiter = RateLimiter(max_requests=100, window_seconds=60)
    fetcher = fetcher_factory(source, limiter=limiter)

    first = await fetcher.fetch(FactKind.QUOTE, "AAPL")
    second = await fetcher.fetch("quote", " aapl ")

    assert first is second
    assert source.calls_for("quote") == 1
    assert limiter.stats()["admitted_total"] == 1


@pytest.mark.asyncio
async def test_permanently_failing_source_is_called_retry_count_plus_one_times(
    source_factory, fetcher_factory, fake_sleep, sleeps
):
    source = source_factory({"AAPL": "165"}, failures={("quote", "AAPL"): TransientNetworkError})
    fetcher = fetcher_factory(source, retry_count=3, base_delay=0.3, sleep=fake_sleep)

    with pytest.raises(TransientNetworkError) as exc_info:
        await fetcher.fetch(FactKind.QUOTE, "AAPL")

    assert source.calls_for("quote", "AAPL") == 4
    assert sleeps == pytest.approx([0.3, 0.6, 1.2])
    assert exc_info.value.symbol == "AAPL"
    assert exc_info.value.fact_kind == "quote"
    assert len(fetcher.cache) == 0


@pytest.mark.asyncio
async def test_upstream_rejection_is_retried_then_succeeds(source_factory, fetcher_factory, fake_sleep):
    source = source_factory(
        {"MSFT": "410"},
        failures={("quote", "MSFT"): [UpstreamRejected, UpstreamRejected, None]},
    )
    fetcher = fetcher_factory(source, sleep=fake_sleep)

    fact = await fetcher.fetch(FactKind.QUOTE, "MSFT")

    assert str(fact.current_price) == "410"
    assert source.calls_for("quote", "MSFT") == 3
    assert fetcher.cache.stats()["size"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ParseFailure, NotFound])
async def test_permanent_errors_are_not_retried(source_factory, fetcher_factory, fake_sleep, sleeps, error):
    source = source_factory({"AAPL": "165"}, failures={("ratio", "AAPL"): error})
    fetcher = fetcher_factory(source, sleep=fake_sleep)

    with pytest.raises(error):
        await fetcher.fetch(FactKind.RATIO, "AAPL")

    assert source.calls_for("ratio", "AAPL") == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_slow_source_times_out(source_factory, fetcher_factory):
    source = source_factory({"AAPL": "165"}, delays={("quote", "AAPL"): 0.5})
    fetcher = fetcher_factory(source, retry_count=0, fetch_timeout=0.05)

    with pytest.raises(FetchTimeout):
        await fetcher.fetch(FactKind.QUOTE, "AAPL")
    assert source.calls_for("quote") == 1


@pytest.mark.asyncio
async def test_unexpected_source_exception_becomes_parse_failure(source_factory, fetcher_factory):
    source = source_factory({"AAPL": "165"}, failures={("earnings", "AAPL"): KeyError("eps")})
    fetcher = fetcher_factory(source)

    with pytest.raises(ParseFailure):
        await fetcher.fetch(FactKind.EARNINGS, "AAPL")
    assert source.calls_for("earnings") == 1


@pytest.mark.asyncio
async def test_missing_source_is_explicit(fetcher_factory):
    fetcher = fetcher_factory(None)
    assert not fetcher.source_configured

    with pytest.raises(SourceUnavailable):
        await fetcher.fetch(FactKind.QUOTE, "AAPL")


@pytest.mark.asyncio
async def test_expired_entry_triggers_new_source_call(source_factory, fetcher_factory, clock):
    source = source_factory({"AAPL": "165"})
    fetcher = fetcher_factory(source, cache=TTLCache(clock=clock), cache_ttl=15)

    await fetcher.fetch(FactKind.QUOTE, "AAPL")
    clock.advance(5)
    await fetcher.fetch(FactKind.QUOTE, "AAPL")
    assert source.calls_for("quote") == 1

    clock.advance(10)
    await fetcher.fetch(FactKind.QUOTE, "AAPL")
    assert source.calls_for("quote") == 2


@pytest.mark.asyncio
async def test_concurrent_fetches_of_same_key_share_one_call(source_factory, fetcher_factory):
    source = source_factory({"AAPL": "165"}, delays={("quote", "AAPL"): 0.05})
    fetcher = fetcher_factory(source)

    results = await asyncio.gather(*(fetcher.fetch(FactKind.QUOTE, "AAPL") for _ in range(5)))

    assert len({id(r) for r in results}) == 1
    assert source.calls_for("quote") == 1


@pytest.mark.asyncio
async def test_denied_admission_waits_instead_of_failing(source_factory, fetcher_factory):
    source = source_factory({"AAPL": "165", "MSFT": "410"})
    limiter = RateLimiter(max_requests=1, window_seconds=0.2)
    fetcher = fetcher_factory(source, limiter=limiter)

    started = time.monotonic()
    await asyncio.gather(
        fetcher.fetch(FactKind.QUOTE, "AAPL"),
        fetcher.fetch(FactKind.QUOTE, "MSFT"),
    )

    call_times = sorted(t for _, _, t in source.calls)
    assert len(call_times) == 2
    assert call_times[1] - call_times[0] >= 0.19
    assert time.monotonic() - started < 1.0
    # the admission retries are not source attempts
    assert fetcher.source_calls == 2


@pytest.mark.asyncio
async def test_retries_pass_admission_again(source_factory, fetcher_factory, fake_sleep):
    source = source_factory(
        {"AAPL": "165"},
        failures={("quote", "AAPL"): [TransientNetworkError, None]},
    )
    limiter = RateLimiter(max_requests=100, window_seconds=60)
    fetcher = fetcher_factory(source, limiter=limiter, sleep=fake_sleep)

    await fetcher.fetch(FactKind.QUOTE, "AAPL")
    assert limiter.stats()["admitted_total"] == 2
