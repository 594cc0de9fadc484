from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List

from .entities import AggregatedRow


@dataclass(frozen=True)
class PortfolioSummary:
    """
    Portfolio-level totals over the rows of one pass.
    Stale rows count towards investment but not towards value figures.
    """
    total_investment: Decimal
    total_value: Decimal
    total_change: Decimal
    total_change_percent: Decimal
    total_gain_loss: Decimal
    number_of_stocks: int
    stale_count: int


@dataclass(frozen=True)
class SectorAllocation:
    sector: str
    value: Decimal
    weight: Decimal
    symbols: List[str]


@dataclass(frozen=True)
class PortfolioSnapshot:
    """
    Result of one refresh: rows in holdings order plus their summary.
    """
    rows: List[AggregatedRow]
    summary: PortfolioSummary
    generated_at: datetime
    duration_seconds: float
    source_configured: bool
    sectors: List[SectorAllocation] = field(default_factory=list)
