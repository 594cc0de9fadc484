"""
Aggregation Orchestrator
Runs one pass over the holdings: staggered, concurrent fact fetches merged
into valued rows. A pass always yields one row per instrument, in order.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from portfolio_pulse.domain.models import AggregatedRow, FactKind, GroupState, Instrument
from portfolio_pulse.domain.services.valuation_engine import ValuationEngine
from portfolio_pulse.infrastructure.market_data.errors import FetchError, SourceUnavailable
from portfolio_pulse.services.fetcher import Fetcher

logger = logging.getLogger(__name__)

DEADLINE_EXCEEDED = "deadline_exceeded"
INTERNAL_ERROR = "internal_error"


class FetchGroup:
    """
    Per-instrument fetch state for one pass.

    PENDING -> FETCHING -> SUCCEEDED | DEGRADED | FAILED
    PENDING -> FAILED  (pass deadline hit before the group started)
    """

    def __init__(self, instrument: Instrument):
        self.instrument = instrument
        self.state = GroupState.PENDING
        self.facts: Dict[FactKind, Any] = {}
        self.errors: Dict[str, str] = {}

    def start(self) -> None:
        if self.state is not GroupState.PENDING:
            raise RuntimeError(f"Group {self.instrument.symbol} already started ({self.state.value})")
        self.state = GroupState.FETCHING

    def record(self, kind: FactKind, fact: Any) -> None:
        self.facts[kind] = fact

    def record_error(self, kind: FactKind, error_kind: str) -> None:
        self.errors[kind.value] = error_kind

    def resolve(self) -> GroupState:
        if FactKind.QUOTE not in self.facts:
            self.state = GroupState.FAILED
        elif len(self.facts) == len(FactKind):
            self.state = GroupState.SUCCEEDED
        else:
            self.state = GroupState.DEGRADED
        return self.state

    def expire(self) -> GroupState:
        """
        Close a group cut off by the pass deadline using whatever arrived.

        A group still PENDING (cut off during its stagger delay) has no
        facts, so every kind is marked deadline_exceeded and it ends FAILED
        without passing through FETCHING.
        """
        for kind in FactKind:
            if kind not in self.facts and kind.value not in self.errors:
                self.errors[kind.value] = DEADLINE_EXCEEDED
        return self.resolve()

    def fail_all(self, error_kind: str) -> GroupState:
        for kind in FactKind:
            self.errors[kind.value] = error_kind
        return self.resolve()

    def to_row(self) -> AggregatedRow:
        return AggregatedRow(
            instrument=self.instrument,
            status=self.state,
            quote=self.facts.get(FactKind.QUOTE),
            ratio=self.facts.get(FactKind.RATIO),
            earnings=self.facts.get(FactKind.EARNINGS),
            errors=dict(self.errors),
        )


class PortfolioOrchestrator:
    """
    Drives aggregation passes over a shared `Fetcher`.

    Group i starts `i * stagger_delay` seconds after the pass begins; once
    started, groups run concurrently. The pass is bounded by `pass_timeout`:
    groups still running at the deadline are cancelled and reported stale.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        stagger_delay: float = 0.1,
        pass_timeout: float = 30.0,
        valuation_engine: Optional[ValuationEngine] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.stagger_delay = stagger_delay
        self.pass_timeout = pass_timeout
        self.valuation_engine = valuation_engine or ValuationEngine()
        self._sleep = sleep

    @property
    def source_configured(self) -> bool:
        return self.fetcher.source_configured

    async def run_pass(self, instruments: Iterable[Instrument]) -> List[AggregatedRow]:
        groups = [FetchGroup(instrument) for instrument in instruments]
        started = time.monotonic()

        if not self.fetcher.source_configured:
            logger.warning(
                f"No market data source configured; {len(groups)} rows returned without prices"
            )
            for group in groups:
                group.fail_all(SourceUnavailable.kind)
            return self._finish(groups, started)

        tasks = [
            asyncio.create_task(self._run_group(group, index * self.stagger_delay))
            for index, group in enumerate(groups)
        ]
        if tasks:
            try:
                _, pending = await asyncio.wait(tasks, timeout=self.pass_timeout)
            except asyncio.CancelledError:
                for task in tasks:
                    task.cancel()
                raise
            if pending:
                logger.warning(
                    f"Pass deadline of {self.pass_timeout}s reached; cancelling {len(pending)} fetch groups"
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        for group in groups:
            if not group.state.is_terminal:
                group.expire()
        return self._finish(groups, started)

    def _finish(self, groups: List[FetchGroup], started: float) -> List[AggregatedRow]:
        rows = self.valuation_engine.value_rows([group.to_row() for group in groups])
        counts = {state: 0 for state in (GroupState.SUCCEEDED, GroupState.DEGRADED, GroupState.FAILED)}
        for row in rows:
            counts[row.status] = counts.get(row.status, 0) + 1
        logger.info(
            f"Aggregation pass finished in {time.monotonic() - started:.2f}s: "
            f"{counts[GroupState.SUCCEEDED]} succeeded, {counts[GroupState.DEGRADED]} degraded, "
            f"{counts[GroupState.FAILED]} failed"
        )
        return rows

    async def _run_group(self, group: FetchGroup, delay: float) -> None:
        if delay > 0:
            await self._sleep(delay)
        group.start()
        await asyncio.gather(*(self._fetch_fact(group, kind) for kind in FactKind))
        group.resolve()

    async def _fetch_fact(self, group: FetchGroup, kind: FactKind) -> None:
        symbol = group.instrument.symbol
        try:
            fact = await self.fetcher.fetch(kind, symbol)
        except FetchError as exc:
            group.record_error(kind, exc.kind)
            if kind is FactKind.QUOTE:
                logger.warning(f"Quote unavailable for {symbol}; row marked stale ({exc.kind}: {exc})")
            else:
                logger.warning(f"{kind.value} unavailable for {symbol}; field left empty ({exc.kind}: {exc})")
            return
        except Exception:
            logger.exception(f"Unexpected error aggregating {kind.value} for {symbol}")
            group.record_error(kind, INTERNAL_ERROR)
            return
        group.record(kind, fact)
