"""
Quote Backend Fact Source
Reads facts from a quote backend exposing
/api/cmp/{symbol}, /api/pe/{symbol} and /api/earnings/{symbol}.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from urllib.parse import quote

import httpx

from portfolio_pulse.domain.models import EarningsFact, QuoteFact, RatioFact
from portfolio_pulse.infrastructure.market_data.errors import (
    FetchTimeout,
    NotFound,
    ParseFailure,
    TransientNetworkError,
    UpstreamRejected,
)

logger = logging.getLogger(__name__)


def _decimal_or_none(value: Any, field: str, symbol: str, fact_kind: str) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ParseFailure(f"Cannot parse {field}={value!r}", symbol, fact_kind) from exc
    if not result.is_finite():
        return None
    return result


class HttpBackendSource:
    """
    `FactSource` backed by an HTTP quote backend.

    Status mapping: 404 -> NotFound, 429 -> UpstreamRejected,
    5xx -> TransientNetworkError, anything else non-200 -> ParseFailure.
    """

    name = "backend"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 8.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not base_url:
            raise ValueError("Backend base URL is required")
        self.base_url = base_url.rstrip("/")
        self.api_key = (api_key or "").strip() or None
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json", "User-Agent": "portfolio-pulse/1.0"}
            if self.api_key:
                headers["Api-Key"] = self.api_key
            self._client = httpx.AsyncClient(headers=headers, timeout=self.timeout_seconds)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request_json(self, path: str, symbol: str, fact_kind: str) -> dict:
        url = f"{self.base_url}{path}/{quote(symbol, safe='')}"
        try:
            response = await self._get_client().get(url)
        except httpx.TimeoutException as exc:
            raise FetchTimeout(f"Backend request timed out: {url}", symbol, fact_kind) from exc
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"Backend request failed: {exc}", symbol, fact_kind) from exc

        status = response.status_code
        if status == 404:
            raise NotFound(f"Backend does not know {symbol}", symbol, fact_kind)
        if status == 429:
            raise UpstreamRejected(f"Backend rate limited {url}", symbol, fact_kind)
        if status >= 500:
            raise TransientNetworkError(f"Backend {status} for {url}", symbol, fact_kind)
        if status != 200:
            logger.debug(f"Backend {status}: {response.text}")
            raise ParseFailure(f"Unexpected backend status {status} for {url}", symbol, fact_kind)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseFailure(f"Backend returned non-JSON payload for {url}", symbol, fact_kind) from exc
        if not isinstance(payload, dict):
            raise ParseFailure(f"Backend returned unexpected payload for {url}", symbol, fact_kind)
        return payload

    @staticmethod
    def _now() -> datetime:
        return datetime.now(tz=timezone.utc)

    async def fetch_quote(self, symbol: str) -> QuoteFact:
        payload = await self._request_json("/api/cmp", symbol, "quote")
        current = _decimal_or_none(payload.get("currentPrice"), "currentPrice", symbol, "quote")
        if current is None:
            raise ParseFailure(f"Backend quote for {symbol} has no currentPrice", symbol, "quote")

        previous_close = _decimal_or_none(payload.get("previousClose"), "previousClose", symbol, "quote")
        change = _decimal_or_none(payload.get("change"), "change", symbol, "quote")
        change_percent = _decimal_or_none(payload.get("changePercent"), "changePercent", symbol, "quote")
        if change is None and previous_close:
            change = current - previous_close
            change_percent = (change / previous_close) * Decimal("100")

        volume = _decimal_or_none(payload.get("volume"), "volume", symbol, "quote")
        return QuoteFact(
            current_price=current,
            previous_close=previous_close,
            change=change,
            change_percent=change_percent,
            volume=int(volume) if volume is not None else None,
            observed_at=self._now(),
        )

    async def fetch_ratio(self, symbol: str) -> RatioFact:
        payload = await self._request_json("/api/pe", symbol, "ratio")
        return RatioFact(
            pe_ratio=_decimal_or_none(payload.get("peRatio"), "peRatio", symbol, "ratio"),
            observed_at=self._now(),
        )

    async def fetch_earnings(self, symbol: str) -> EarningsFact:
        payload = await self._request_json("/api/earnings", symbol, "earnings")
        latest = payload.get("latestEarnings") or {}
        if not isinstance(latest, dict):
            raise ParseFailure(f"Backend earnings for {symbol} are malformed", symbol, "earnings")
        return EarningsFact(
            date=(latest.get("date") or None),
            eps=_decimal_or_none(latest.get("eps"), "eps", symbol, "earnings"),
            revenue=_decimal_or_none(latest.get("revenue"), "revenue", symbol, "earnings"),
            observed_at=self._now(),
        )
