"""
HOLDINGS LOADER
Load the static holdings list from YAML

RULES:
- Fail fast on invalid entries (index named in the error)
- Symbols are normalized (stripped, upper-cased) and must be unique
- File order is preserved; it becomes the row order of every pass
"""

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from portfolio_pulse.domain.models import Instrument

REQUIRED_FIELDS = ("symbol", "purchase_price", "shares")


def _decimal(value: Any, field: str, index: int) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Holding #{index}: invalid {field} {value!r}")
    if not result.is_finite():
        raise ValueError(f"Holding #{index}: invalid {field} {value!r}")
    return result


def parse_holdings(data: Dict) -> List[Instrument]:
    """Build instruments from an already-parsed `{"holdings": [...]}` mapping."""
    entries = (data or {}).get("holdings")
    if not isinstance(entries, list):
        raise ValueError("Holdings config must contain a 'holdings' list")

    instruments: List[Instrument] = []
    seen = set()
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Holding #{index}: expected a mapping")
        missing = [f for f in REQUIRED_FIELDS if entry.get(f) in (None, "")]
        if missing:
            raise ValueError(f"Holding #{index}: missing {', '.join(missing)}")

        symbol = str(entry["symbol"]).strip().upper()
        if symbol in seen:
            raise ValueError(f"Holding #{index}: duplicate symbol {symbol}")
        seen.add(symbol)

        try:
            instruments.append(
                Instrument(
                    symbol=symbol,
                    company_name=str(entry.get("company_name") or symbol),
                    sector=str(entry.get("sector") or "Unclassified"),
                    exchange=str(entry.get("exchange") or ""),
                    purchase_price=_decimal(entry["purchase_price"], "purchase_price", index),
                    share_count=_decimal(entry["shares"], "shares", index),
                )
            )
        except ValueError as exc:
            if str(exc).startswith("Holding #"):
                raise
            raise ValueError(f"Holding #{index}: {exc}") from exc
    return instruments


def load_holdings(path: Union[str, Path]) -> List[Instrument]:
    holdings_file = Path(path)
    if not holdings_file.exists():
        raise FileNotFoundError(f"Holdings config not found: {holdings_file}")

    with open(holdings_file, "r") as f:
        data = yaml.safe_load(f)
    return parse_holdings(data)
