"""
Portfolio API Routes
Aggregated rows, totals and sector split for the configured holdings
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from portfolio_pulse.domain.models import PortfolioSnapshot
from portfolio_pulse.domain.schemas.portfolio import (
    PortfolioRowSchema,
    PortfolioSnapshotSchema,
    PortfolioSummarySchema,
    SectorSchema,
)
from portfolio_pulse.services.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)
router = APIRouter()


def _get_service(request: Request) -> PortfolioService:
    service = getattr(request.app.state, "portfolio_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Portfolio service not initialised")
    return service


async def _snapshot(request: Request, max_age: Optional[float]) -> PortfolioSnapshot:
    service = _get_service(request)
    if max_age is None:
        max_age = getattr(request.app.state, "snapshot_max_age", None)
    try:
        return await service.get_snapshot(max_age_seconds=max_age)
    except Exception as exc:
        logger.exception("Failed to build portfolio snapshot")
        raise HTTPException(status_code=500, detail="Failed to fetch portfolio data") from exc


@router.get("", response_model=List[PortfolioRowSchema])
async def get_portfolio(request: Request, max_age: Optional[float] = Query(None, ge=0)):
    """One row per holding, in holdings order. Stale rows carry null prices."""
    snapshot = await _snapshot(request, max_age)
    return [PortfolioRowSchema.from_row(row) for row in snapshot.rows]


@router.get("/snapshot", response_model=PortfolioSnapshotSchema)
async def get_portfolio_snapshot(request: Request, max_age: Optional[float] = Query(None, ge=0)):
    snapshot = await _snapshot(request, max_age)
    return PortfolioSnapshotSchema.from_snapshot(snapshot)


@router.get("/summary", response_model=PortfolioSummarySchema)
async def get_portfolio_summary(request: Request, max_age: Optional[float] = Query(None, ge=0)):
    snapshot = await _snapshot(request, max_age)
    return PortfolioSummarySchema.from_summary(snapshot.summary)


@router.get("/sectors", response_model=List[SectorSchema])
async def get_portfolio_sectors(request: Request, max_age: Optional[float] = Query(None, ge=0)):
    snapshot = await _snapshot(request, max_age)
    return [SectorSchema.from_allocation(a) for a in snapshot.sectors]


@router.get("/top", response_model=List[PortfolioRowSchema])
async def get_top_holdings(
    request: Request,
    limit: int = Query(10, ge=1, le=100),
    max_age: Optional[float] = Query(None, ge=0),
):
    snapshot = await _snapshot(request, max_age)
    service = _get_service(request)
    top = service.valuation_engine.top_holdings(snapshot.rows, limit=limit)
    return [PortfolioRowSchema.from_row(row) for row in top]


@router.post("/refresh", response_model=PortfolioSummarySchema)
async def refresh_portfolio(request: Request):
    service = _get_service(request)
    snapshot = await service.refresh()
    return PortfolioSummarySchema.from_summary(snapshot.summary)
