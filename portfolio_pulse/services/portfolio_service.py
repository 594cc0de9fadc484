"""
Portfolio Service
Keeps the latest snapshot of the holdings and refreshes it on demand
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from portfolio_pulse.domain.models import Instrument, PortfolioSnapshot
from portfolio_pulse.domain.services.valuation_engine import ValuationEngine
from portfolio_pulse.services.orchestrator import PortfolioOrchestrator

logger = logging.getLogger(__name__)


class PortfolioService:
    """
    Owns the holdings list and the most recent `PortfolioSnapshot`.

    Refreshes are serialized; a caller that waited on a running refresh
    reuses its result when it is fresh enough.
    """

    def __init__(
        self,
        orchestrator: PortfolioOrchestrator,
        instruments: List[Instrument],
        valuation_engine: Optional[ValuationEngine] = None,
    ):
        self.orchestrator = orchestrator
        self.instruments = list(instruments)
        self.valuation_engine = valuation_engine or ValuationEngine()
        self._latest: Optional[PortfolioSnapshot] = None
        self._lock = asyncio.Lock()

    @property
    def latest(self) -> Optional[PortfolioSnapshot]:
        return self._latest

    def _is_fresh(self, snapshot: Optional[PortfolioSnapshot], max_age_seconds: Optional[float]) -> bool:
        if snapshot is None:
            return False
        if max_age_seconds is None:
            return True
        age = (datetime.now(tz=timezone.utc) - snapshot.generated_at).total_seconds()
        return age <= max_age_seconds

    async def refresh(self) -> PortfolioSnapshot:
        async with self._lock:
            return await self._refresh_locked()

    async def get_snapshot(self, max_age_seconds: Optional[float] = None) -> PortfolioSnapshot:
        if self._is_fresh(self._latest, max_age_seconds):
            return self._latest
        async with self._lock:
            if self._is_fresh(self._latest, max_age_seconds):
                return self._latest
            return await self._refresh_locked()

    async def _refresh_locked(self) -> PortfolioSnapshot:
        started = time.monotonic()
        rows = await self.orchestrator.run_pass(self.instruments)
        snapshot = PortfolioSnapshot(
            rows=rows,
            summary=self.valuation_engine.summarize(rows),
            generated_at=datetime.now(tz=timezone.utc),
            duration_seconds=time.monotonic() - started,
            source_configured=self.orchestrator.source_configured,
            sectors=self.valuation_engine.sector_breakdown(rows),
        )
        self._latest = snapshot
        if snapshot.summary.stale_count:
            logger.info(
                f"Snapshot refreshed with {snapshot.summary.stale_count}/{len(rows)} stale rows"
            )
        return snapshot
