"""
YFinance Fact Source
Quote, P/E and earnings facts from Yahoo Finance
Async-safe via thread offloading
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional, Tuple

import pandas as pd
import yfinance as yf
from yfinance.exceptions import YFRateLimitError

from portfolio_pulse.domain.models import EarningsFact, QuoteFact, RatioFact
from portfolio_pulse.infrastructure.market_data.errors import (
    FetchError,
    FetchTimeout,
    NotFound,
    ParseFailure,
    TransientNetworkError,
    UpstreamRejected,
)

logger = logging.getLogger(__name__)


def _to_decimal(value: Any, field: str, symbol: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ParseFailure(f"Cannot parse {field}={value!r}", symbol) from exc
    # Yahoo reports undefined ratios as "Infinity"
    if not result.is_finite():
        return None
    return result


def _first(mapping: Any, *keys: str) -> Any:
    for key in keys:
        try:
            value = mapping.get(key)
        except (KeyError, AttributeError, TypeError):
            continue
        if value is not None and not pd.isna(value):
            return value
    return None


class YFinanceSource:
    """
    Yahoo Finance implementation of `FactSource`.

    Symbols are passed through unchanged unless mapped, e.g. via
    YF_SYMBOL_OVERRIDES="BRK.B=BRK-B,INFY=INFY.NS".
    """

    name = "yfinance"

    def __init__(self, symbol_mapping: Optional[Dict[str, str]] = None):
        self.symbol_mapping = {k.upper(): v for k, v in (symbol_mapping or {}).items()}
        self._apply_symbol_overrides()

    def _apply_symbol_overrides(self) -> None:
        raw = os.getenv("YF_SYMBOL_OVERRIDES", "").strip()
        if not raw:
            return
        overrides: Dict[str, str] = {}
        for pair in raw.split(","):
            pair = pair.strip()
            if not pair or "=" not in pair:
                continue
            key, value = pair.split("=", 1)
            key = key.strip().upper()
            value = value.strip()
            if key and value:
                overrides[key] = value
        if overrides:
            self.symbol_mapping.update(overrides)

    # ------------------------------------------------------------------
    # INTERNAL HELPERS
    # ------------------------------------------------------------------

    def _ticker(self, symbol: str) -> yf.Ticker:
        return yf.Ticker(self.symbol_mapping.get(symbol.upper(), symbol))

    async def _run(self, fn: Callable, symbol: str, fact_kind: str):
        """
        Run a blocking yfinance call in a thread and translate its failures
        into typed fetch errors.
        """
        try:
            return await asyncio.to_thread(fn, symbol)
        except FetchError as exc:
            raise exc.bind(symbol, fact_kind)
        except YFRateLimitError as exc:
            raise UpstreamRejected(f"Yahoo rate limited request: {exc}", symbol, fact_kind) from exc
        except TimeoutError as exc:
            raise FetchTimeout(f"Yahoo request timed out: {exc}", symbol, fact_kind) from exc
        except Exception as exc:
            if "timeout" in type(exc).__name__.lower():
                raise FetchTimeout(f"Yahoo request timed out: {exc}", symbol, fact_kind) from exc
            if isinstance(exc, (ConnectionError, OSError)):
                raise TransientNetworkError(f"Yahoo request failed: {exc}", symbol, fact_kind) from exc
            raise ParseFailure(f"Unreadable Yahoo response: {exc}", symbol, fact_kind) from exc

    @staticmethod
    def _now() -> datetime:
        return datetime.now(tz=timezone.utc)

    # ------------------------------------------------------------------
    # QUOTE
    # ------------------------------------------------------------------

    def _load_quote(self, symbol: str) -> Tuple[Any, Any, Any]:
        ticker = self._ticker(symbol)
        fi = ticker.fast_info
        price = _first(fi, "last_price", "lastPrice", "regularMarketPrice")
        prev = _first(fi, "previous_close", "previousClose", "regularMarketPreviousClose")
        volume = _first(fi, "last_volume", "lastVolume")

        if price is None:
            # thinly traded symbols often lack fast_info; use the last daily close
            hist = ticker.history(period="5d", interval="1d", actions=False)
            if hist is not None and not hist.empty and "Close" in hist:
                closes = hist["Close"].dropna()
                if not closes.empty:
                    price = float(closes.iloc[-1])
                    prev = float(closes.iloc[-2]) if len(closes) > 1 else prev
                if "Volume" in hist and not hist["Volume"].dropna().empty:
                    volume = hist["Volume"].dropna().iloc[-1]
        return price, prev, volume

    async def fetch_quote(self, symbol: str) -> QuoteFact:
        price, prev, volume = await self._run(self._load_quote, symbol, "quote")
        current = _to_decimal(price, "current_price", symbol)
        if current is None:
            raise NotFound(f"No price data for {symbol}", symbol, "quote")

        previous_close = _to_decimal(prev, "previous_close", symbol)
        change = None
        change_percent = None
        if previous_close:
            change = current - previous_close
            change_percent = (change / previous_close) * Decimal("100")

        return QuoteFact(
            current_price=current,
            previous_close=previous_close,
            change=change,
            change_percent=change_percent,
            volume=int(volume) if volume is not None else None,
            observed_at=self._now(),
        )

    # ------------------------------------------------------------------
    # P/E RATIO
    # ------------------------------------------------------------------

    def _load_info(self, symbol: str) -> Dict[str, Any]:
        info = self._ticker(symbol).info
        # unknown symbols come back as a near-empty dict
        if not isinstance(info, dict) or len(info) <= 1:
            raise NotFound(f"No fundamentals for {symbol}", symbol)
        return info

    async def fetch_ratio(self, symbol: str) -> RatioFact:
        info = await self._run(self._load_info, symbol, "ratio")
        pe = _first(info, "trailingPE", "trailingPe", "forwardPE")
        return RatioFact(
            pe_ratio=_to_decimal(pe, "pe_ratio", symbol),
            observed_at=self._now(),
        )

    # ------------------------------------------------------------------
    # EARNINGS
    # ------------------------------------------------------------------

    def _load_earnings(self, symbol: str) -> Tuple[Optional[str], Any, Any]:
        ticker = self._ticker(symbol)
        report_date: Optional[str] = None
        eps = None

        try:
            dates = ticker.earnings_dates
        except (KeyError, ValueError, AttributeError) as exc:
            logger.debug(f"No earnings calendar for {symbol}: {exc}")
            dates = None

        if dates is not None and not dates.empty and "Reported EPS" in dates:
            reported = dates["Reported EPS"].dropna().sort_index()
            if not reported.empty:
                eps = reported.iloc[-1]
                report_date = pd.Timestamp(reported.index[-1]).date().isoformat()

        info = ticker.info
        if not isinstance(info, dict):
            info = {}
        if eps is None:
            eps = _first(info, "epsTrailingTwelveMonths", "trailingEps")
        revenue = _first(info, "totalRevenue")
        return report_date, eps, revenue

    async def fetch_earnings(self, symbol: str) -> EarningsFact:
        report_date, eps, revenue = await self._run(self._load_earnings, symbol, "earnings")
        return EarningsFact(
            date=report_date,
            eps=_to_decimal(eps, "eps", symbol),
            revenue=_to_decimal(revenue, "revenue", symbol),
            observed_at=self._now(),
        )
