from dataclasses import dataclass


@dataclass(frozen=True)
class AggregationConfig:
    """
    Tuning knobs of the aggregation core. Durations are in seconds.
    """
    cache_ttl: float = 15.0
    cache_max_entries: int = 1024
    rate_limit_max_requests: int = 300
    rate_limit_window: float = 60.0
    stagger_delay: float = 0.1
    fetch_timeout: float = 8.0
    retry_count: int = 3
    retry_base_delay: float = 0.3
    pass_timeout: float = 30.0
    admission_poll_max: float = 1.0

    def __post_init__(self):
        if self.cache_ttl <= 0:
            raise ValueError("cache_ttl must be positive")
        if self.rate_limit_max_requests < 1:
            raise ValueError("rate_limit_max_requests must be at least 1")
        if self.rate_limit_window <= 0:
            raise ValueError("rate_limit_window must be positive")
        if self.stagger_delay < 0:
            raise ValueError("stagger_delay cannot be negative")
        if self.fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be positive")
        if self.retry_count < 0:
            raise ValueError("retry_count cannot be negative")
        if self.retry_base_delay < 0:
            raise ValueError("retry_base_delay cannot be negative")
        if self.pass_timeout <= 0:
            raise ValueError("pass_timeout must be positive")
        if self.admission_poll_max <= 0:
            raise ValueError("admission_poll_max must be positive")

    @staticmethod
    def from_settings(settings) -> "AggregationConfig":
        return AggregationConfig(
            cache_ttl=float(settings.CACHE_TTL_SECONDS),
            cache_max_entries=int(settings.CACHE_MAX_ENTRIES),
            rate_limit_max_requests=int(settings.RATE_LIMIT_MAX_REQUESTS),
            rate_limit_window=float(settings.RATE_LIMIT_WINDOW_SECONDS),
            stagger_delay=settings.STAGGER_DELAY_MS / 1000.0,
            fetch_timeout=float(settings.FETCH_TIMEOUT_SECONDS),
            retry_count=int(settings.RETRY_COUNT),
            retry_base_delay=settings.RETRY_BASE_DELAY_MS / 1000.0,
            pass_timeout=float(settings.PASS_TIMEOUT_SECONDS),
        )
