from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel

from portfolio_pulse.domain.models import (
    AggregatedRow,
    EarningsFact,
    PortfolioSnapshot,
    PortfolioSummary,
    QuoteFact,
    RatioFact,
    SectorAllocation,
)


def _f(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


class QuoteSchema(BaseModel):
    current_price: float
    previous_close: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    volume: Optional[int] = None
    observed_at: datetime

    @classmethod
    def from_fact(cls, fact: QuoteFact) -> "QuoteSchema":
        return cls(
            current_price=float(fact.current_price),
            previous_close=_f(fact.previous_close),
            change=_f(fact.change),
            change_percent=_f(fact.change_percent),
            volume=fact.volume,
            observed_at=fact.observed_at,
        )


class RatioSchema(BaseModel):
    pe_ratio: Optional[float] = None
    observed_at: datetime

    @classmethod
    def from_fact(cls, fact: RatioFact) -> "RatioSchema":
        return cls(pe_ratio=_f(fact.pe_ratio), observed_at=fact.observed_at)


class EarningsSchema(BaseModel):
    date: Optional[str] = None
    eps: Optional[float] = None
    revenue: Optional[float] = None
    observed_at: datetime

    @classmethod
    def from_fact(cls, fact: EarningsFact) -> "EarningsSchema":
        return cls(
            date=fact.date,
            eps=_f(fact.eps),
            revenue=_f(fact.revenue),
            observed_at=fact.observed_at,
        )


class PortfolioRowSchema(BaseModel):
    symbol: str
    company_name: str
    sector: str
    exchange: str
    purchase_price: float
    shares: float
    status: str
    stale: bool
    investment: float
    current_price: Optional[float] = None
    previous_close: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    volume: Optional[int] = None
    pe_ratio: Optional[float] = None
    latest_earnings: Optional[EarningsSchema] = None
    present_value: Optional[float] = None
    gain_loss: Optional[float] = None
    weight: Optional[float] = None
    errors: Dict[str, str] = {}

    @classmethod
    def from_row(cls, row: AggregatedRow) -> "PortfolioRowSchema":
        instrument = row.instrument
        quote = row.quote
        return cls(
            symbol=instrument.symbol,
            company_name=instrument.company_name,
            sector=instrument.sector,
            exchange=instrument.exchange,
            purchase_price=float(instrument.purchase_price),
            shares=float(instrument.share_count),
            status=row.status.value,
            stale=row.stale,
            investment=float(row.investment),
            current_price=_f(quote.current_price) if quote else None,
            previous_close=_f(quote.previous_close) if quote else None,
            change=_f(quote.change) if quote else None,
            change_percent=_f(quote.change_percent) if quote else None,
            volume=quote.volume if quote else None,
            pe_ratio=_f(row.pe_ratio),
            latest_earnings=EarningsSchema.from_fact(row.earnings) if row.earnings else None,
            present_value=_f(row.present_value),
            gain_loss=_f(row.gain_loss),
            weight=_f(row.weight),
            errors=dict(row.errors),
        )


class PortfolioSummarySchema(BaseModel):
    total_investment: float
    total_value: float
    total_change: float
    total_change_percent: float
    total_gain_loss: float
    number_of_stocks: int
    stale_count: int

    @classmethod
    def from_summary(cls, summary: PortfolioSummary) -> "PortfolioSummarySchema":
        return cls(
            total_investment=float(summary.total_investment),
            total_value=float(summary.total_value),
            total_change=float(summary.total_change),
            total_change_percent=float(summary.total_change_percent),
            total_gain_loss=float(summary.total_gain_loss),
            number_of_stocks=summary.number_of_stocks,
            stale_count=summary.stale_count,
        )


class SectorSchema(BaseModel):
    sector: str
    value: float
    weight: float
    symbols: List[str]

    @classmethod
    def from_allocation(cls, allocation: SectorAllocation) -> "SectorSchema":
        return cls(
            sector=allocation.sector,
            value=float(allocation.value),
            weight=float(allocation.weight),
            symbols=list(allocation.symbols),
        )


class PortfolioSnapshotSchema(BaseModel):
    rows: List[PortfolioRowSchema]
    summary: PortfolioSummarySchema
    generated_at: datetime
    duration_seconds: float
    source_configured: bool

    @classmethod
    def from_snapshot(cls, snapshot: PortfolioSnapshot) -> "PortfolioSnapshotSchema":
        return cls(
            rows=[PortfolioRowSchema.from_row(row) for row in snapshot.rows],
            summary=PortfolioSummarySchema.from_summary(snapshot.summary),
            generated_at=snapshot.generated_at,
            duration_seconds=snapshot.duration_seconds,
            source_configured=snapshot.source_configured,
        )
