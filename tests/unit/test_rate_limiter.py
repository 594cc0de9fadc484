import threading

import pytest

from portfolio_pulse.infrastructure.market_data.rate_limiter import RateLimiter


def test_admits_up_to_max_then_rejects(clock):
    limiter = RateLimiter(max_requests=3, window_seconds=1.0, clock=clock)

    assert [limiter.try_acquire() for _ in range(4)] == [True, True, True, False]
    assert limiter.stats()["rejected_total"] == 1


def test_window_slides_per_admission(clock):
    limiter = RateLimiter(max_requests=2, window_seconds=1.0, clock=clock)
    assert limiter.try_acquire()
    clock.advance(0.5)
    assert limiter.try_acquire()
    assert not limiter.try_acquire()

    # the first admission leaves the window at t=1.0, the second at t=1.5
    clock.advance(0.5)
    assert limiter.try_acquire()
    assert not limiter.try_acquire()
    clock.advance(0.25)
    assert not limiter.try_acquire()
    clock.advance(0.25)
    assert limiter.try_acquire()


def test_time_until_available(clock):
    limiter = RateLimiter(max_requests=1, window_seconds=2.0, clock=clock)
    assert limiter.time_until_available() == 0.0

    limiter.try_acquire()
    clock.advance(0.5)
    assert limiter.time_until_available() == pytest.approx(1.5)


def test_in_window_count(clock):
    limiter = RateLimiter(max_requests=5, window_seconds=1.0, clock=clock)
    limiter.try_acquire()
    limiter.try_acquire()
    assert limiter.in_window() == 2
    clock.advance(1.0)
    assert limiter.in_window() == 0


@pytest.mark.parametrize("max_requests,window", [(0, 1.0), (1, 0), (1, -1.0)])
def test_invalid_configuration(max_requests, window):
    with pytest.raises(ValueError):
        RateLimiter(max_requests=max_requests, window_seconds=window)


def test_concurrent_callers_never_exceed_budget():
    limiter = RateLimiter(max_requests=10, window_seconds=60.0)
    admitted = []
    lock = threading.Lock()

    def worker():
        for _ in range(20):
            if limiter.try_acquire():
                with lock:
                    admitted.append(1)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(admitted) == 10
