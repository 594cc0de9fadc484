"""
Valuation Engine
Derives per-row money figures and portfolio-level totals from aggregated rows
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, List

from portfolio_pulse.domain.models import AggregatedRow, PortfolioSummary, SectorAllocation

HUNDRED = Decimal("100")
ZERO = Decimal("0")


class ValuationEngine:
    """
    Pure computation over `AggregatedRow` lists. No I/O.
    """

    def value_rows(self, rows: List[AggregatedRow]) -> List[AggregatedRow]:
        """
        Fill investment, present value, gain/loss and weight in place.

        Rows without a quote keep None for every price-derived field and are
        left out of the weight denominator.
        """
        for row in rows:
            instrument = row.instrument
            row.investment = instrument.investment
            if row.quote is None:
                row.present_value = None
                row.gain_loss = None
                row.weight = None
                continue
            row.present_value = row.quote.current_price * instrument.share_count
            row.gain_loss = row.present_value - row.investment

        total = sum((r.present_value for r in rows if r.present_value is not None), ZERO)
        for row in rows:
            if row.present_value is None:
                continue
            row.weight = (row.present_value / total) * HUNDRED if total > 0 else ZERO
        return rows

    def summarize(self, rows: Iterable[AggregatedRow]) -> PortfolioSummary:
        rows = list(rows)
        valued = [r for r in rows if r.present_value is not None]

        total_investment = sum((r.investment for r in rows), ZERO)
        total_value = sum((r.present_value for r in valued), ZERO)
        total_gain_loss = sum((r.gain_loss for r in valued), ZERO)
        total_change = ZERO
        for row in valued:
            if row.quote.change is not None:
                total_change += row.quote.change * row.instrument.share_count

        base = total_value - total_change
        total_change_percent = (total_change / base) * HUNDRED if base > 0 else ZERO

        return PortfolioSummary(
            total_investment=total_investment,
            total_value=total_value,
            total_change=total_change,
            total_change_percent=total_change_percent,
            total_gain_loss=total_gain_loss,
            number_of_stocks=len(rows),
            stale_count=len(rows) - len(valued),
        )

    def sector_breakdown(self, rows: Iterable[AggregatedRow]) -> List[SectorAllocation]:
        """Value per sector, largest first. Stale rows are not counted."""
        values: Dict[str, Decimal] = OrderedDict()
        symbols: Dict[str, List[str]] = {}
        for row in rows:
            if row.present_value is None:
                continue
            sector = row.instrument.sector or "Unclassified"
            values[sector] = values.get(sector, ZERO) + row.present_value
            symbols.setdefault(sector, []).append(row.symbol)

        total = sum(values.values(), ZERO)
        allocations = [
            SectorAllocation(
                sector=sector,
                value=value,
                weight=(value / total) * HUNDRED if total > 0 else ZERO,
                symbols=symbols[sector],
            )
            for sector, value in values.items()
        ]
        allocations.sort(key=lambda a: a.value, reverse=True)
        return allocations

    def top_holdings(self, rows: Iterable[AggregatedRow], limit: int = 10) -> List[AggregatedRow]:
        valued = [r for r in rows if r.present_value is not None]
        valued.sort(key=lambda r: r.present_value, reverse=True)
        return valued[:limit]
