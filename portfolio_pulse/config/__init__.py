"""
Application Settings
Load from environment variables
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    CORS_ORIGINS: List[str] = ["*"]

    # ======================
    # Holdings
    # ======================
    HOLDINGS_FILE: str = "config/holdings.yml"

    # ======================
    # Market Data
    # ======================
    # yfinance | backend | none
    MARKET_DATA_PROVIDER: str = "yfinance"
    FALLBACK_PROVIDERS: List[str] = []
    BACKEND_URL: Optional[str] = None
    BACKEND_API_KEY: Optional[str] = None

    # ======================
    # Aggregation
    # ======================
    CACHE_TTL_SECONDS: float = 15.0
    CACHE_MAX_ENTRIES: int = 1024
    RATE_LIMIT_MAX_REQUESTS: int = 300
    RATE_LIMIT_WINDOW_SECONDS: float = 60.0
    STAGGER_DELAY_MS: int = 100
    FETCH_TIMEOUT_SECONDS: float = 8.0
    RETRY_COUNT: int = 3
    RETRY_BASE_DELAY_MS: int = 300
    PASS_TIMEOUT_SECONDS: float = 30.0

    # ======================
    # Scheduler
    # ======================
    SCHEDULER_ENABLED: bool = True
    REFRESH_INTERVAL_SECONDS: int = 15
    CACHE_SWEEP_INTERVAL_SECONDS: int = 60

    # ======================
    # Pydantic v2 config
    # ======================
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )


settings = Settings()
