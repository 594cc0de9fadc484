"""
Market Data routes - single facts & pipeline status.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from portfolio_pulse.domain.models import FactKind
from portfolio_pulse.domain.schemas.portfolio import EarningsSchema, QuoteSchema, RatioSchema
from portfolio_pulse.infrastructure.market_data.errors import FetchError, NotFound, SourceUnavailable
from portfolio_pulse.services.fetcher import Fetcher

logger = logging.getLogger(__name__)
router = APIRouter()

_SCHEMAS = {
    FactKind.QUOTE: QuoteSchema,
    FactKind.RATIO: RatioSchema,
    FactKind.EARNINGS: EarningsSchema,
}


def _get_fetcher(request: Request) -> Fetcher:
    fetcher = getattr(request.app.state, "fetcher", None)
    if fetcher is None:
        raise HTTPException(status_code=503, detail="Fetcher not initialised")
    return fetcher


@router.get("/status")
async def market_data_status(request: Request):
    """Return configured source, cache and rate limiter state."""
    fetcher = _get_fetcher(request)
    source = fetcher.source
    last_sources = source.get_last_sources() if hasattr(source, "get_last_sources") else None
    return {
        "source": getattr(source, "name", None),
        "source_configured": fetcher.source_configured,
        "source_calls": fetcher.source_calls,
        "cache": fetcher.cache.stats(),
        "rate_limiter": fetcher.limiter.stats(),
        "last_sources": last_sources,
    }


@router.get("/{kind}/{symbol}")
async def get_fact(kind: FactKind, symbol: str, request: Request):
    """Fetch one fact through the shared cache and rate limiter."""
    fetcher = _get_fetcher(request)
    try:
        fact = await fetcher.fetch(kind, symbol)
    except SourceUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except NotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except FetchError as exc:
        logger.error(f"{kind.value} fetch failed for {symbol}: {exc.kind}: {exc}")
        raise HTTPException(status_code=502, detail=f"Failed to fetch {kind.value} ({exc.kind})") from exc
    return _SCHEMAS[kind].from_fact(fact)
