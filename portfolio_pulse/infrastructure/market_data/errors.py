"""
Typed fetch errors raised by fact sources and the fetcher.
"""

from __future__ import annotations

from typing import Optional


class FetchError(Exception):
    """Base class for every failure to obtain a fact."""

    kind = "fetch_error"
    retryable = False

    def __init__(self, message: str, symbol: Optional[str] = None, fact_kind: Optional[str] = None):
        super().__init__(message)
        self.symbol = symbol
        self.fact_kind = fact_kind

    def bind(self, symbol: str, fact_kind: str) -> "FetchError":
        if self.symbol is None:
            self.symbol = symbol
        if self.fact_kind is None:
            self.fact_kind = fact_kind
        return self


class TransientNetworkError(FetchError):
    """Connection reset, DNS hiccup, 5xx from the provider."""

    kind = "transient_network"
    retryable = True


class FetchTimeout(TransientNetworkError):
    kind = "timeout"


class UpstreamRejected(FetchError):
    """Provider explicitly throttled us (HTTP 429 or equivalent)."""

    kind = "upstream_rejected"
    retryable = True


class ParseFailure(FetchError):
    """Provider answered with data that cannot be interpreted."""

    kind = "parse_failure"


class NotFound(FetchError):
    """Symbol unknown to the provider."""

    kind = "not_found"


class SourceUnavailable(FetchError):
    """No provider is configured for this fact."""

    kind = "source_unavailable"
