"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    FactKind,
    GroupState,

    # Entities
    AggregatedRow,
    EarningsFact,
    Instrument,
    QuoteFact,
    RatioFact,
)
from .summary import PortfolioSnapshot, PortfolioSummary, SectorAllocation

__all__ = [
    "FactKind",
    "GroupState",
    "AggregatedRow",
    "EarningsFact",
    "Instrument",
    "QuoteFact",
    "RatioFact",
    "PortfolioSnapshot",
    "PortfolioSummary",
    "SectorAllocation",
]
