"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional


class FactKind(str, Enum):
    """Kind of datum fetched from an external source"""
    QUOTE = "quote"
    RATIO = "ratio"
    EARNINGS = "earnings"


class GroupState(str, Enum):
    """Lifecycle of one instrument's fetch group within a pass"""
    PENDING = "PENDING"
    FETCHING = "FETCHING"
    SUCCEEDED = "SUCCEEDED"
    DEGRADED = "DEGRADED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (GroupState.SUCCEEDED, GroupState.DEGRADED, GroupState.FAILED)


@dataclass(frozen=True)
class Instrument:
    """Portfolio holding identity - Immutable"""
    symbol: str
    company_name: str
    sector: str
    exchange: str
    purchase_price: Decimal
    share_count: Decimal

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("Instrument symbol cannot be empty")
        if self.purchase_price < 0:
            raise ValueError(f"Purchase price for {self.symbol} cannot be negative")
        if self.share_count < 0:
            raise ValueError(f"Share count for {self.symbol} cannot be negative")

    @property
    def investment(self) -> Decimal:
        return self.purchase_price * self.share_count


@dataclass(frozen=True)
class QuoteFact:
    """Latest traded price for one instrument"""
    current_price: Decimal
    previous_close: Optional[Decimal]
    change: Optional[Decimal]
    change_percent: Optional[Decimal]
    volume: Optional[int]
    observed_at: datetime


@dataclass(frozen=True)
class RatioFact:
    """Price/earnings ratio; None means the source does not know it"""
    pe_ratio: Optional[Decimal]
    observed_at: datetime


@dataclass(frozen=True)
class EarningsFact:
    """Latest reported earnings. All-None fields means no earnings data."""
    date: Optional[str]
    eps: Optional[Decimal]
    revenue: Optional[Decimal]
    observed_at: datetime


@dataclass
class AggregatedRow:
    """
    One instrument's row for a single aggregation pass.

    Derived fields are None when the quote is unknown (stale row).
    `errors` maps fact kind -> error kind for facts that could not be fetched.
    """
    instrument: Instrument
    status: GroupState
    quote: Optional[QuoteFact] = None
    ratio: Optional[RatioFact] = None
    earnings: Optional[EarningsFact] = None
    investment: Decimal = Decimal("0")
    present_value: Optional[Decimal] = None
    gain_loss: Optional[Decimal] = None
    weight: Optional[Decimal] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def symbol(self) -> str:
        return self.instrument.symbol

    @property
    def stale(self) -> bool:
        return self.quote is None

    @property
    def pe_ratio(self) -> Optional[Decimal]:
        return self.ratio.pe_ratio if self.ratio else None
