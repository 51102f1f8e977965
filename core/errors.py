"""Error taxonomy shared by the fetch path, the gate and the HTTP API.

Data absence is never an exception (metrics are simply None). What is left:
upstream failures, limit exhaustion, and invalid caller input.
"""

from __future__ import annotations


class TickerLensError(Exception):
    """Base class for all errors raised by the core."""


class InvalidTickerError(TickerLensError):
    """The caller supplied a symbol that cannot be a ticker."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Invalid ticker symbol: {symbol!r}")
        self.symbol = symbol


class TooManySymbolsError(TickerLensError):
    """A comparison asked for more symbols than the subject's tier allows."""

    def __init__(self, count: int, max_symbols: int) -> None:
        super().__init__(f"Cannot compare {count} symbols; the limit is {max_symbols}")
        self.count = count
        self.max_symbols = max_symbols


class UpstreamError(TickerLensError):
    """The market data source failed (network, HTTP status, or parse error).

    The underlying exception is kept on `cause` (and chained via `raise ... from`).
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class SymbolNotFoundError(UpstreamError):
    """The upstream answered, but knows nothing about the symbol."""

    def __init__(self, symbol: str) -> None:
        super().__init__(f"Symbol {symbol!r} was not found")
        self.symbol = symbol


class LimitError(TickerLensError):
    """Expected 'try later' condition: quota or rate limit exhausted."""


class QuotaExhaustedError(LimitError):
    """The subject spent its daily call budget. Terminal for the request."""

    def __init__(self, subject_id: str, limit: int, date_key: str) -> None:
        super().__init__(
            f"Daily quota exhausted for {subject_id} ({limit} calls on {date_key})"
        )
        self.subject_id = subject_id
        self.limit = limit
        self.date_key = date_key


class RateLimitExceededError(LimitError):
    """The sliding window for a scope is full."""

    def __init__(self, scope_key: str, limit: int, window_ms: int, retry_after_ms: float) -> None:
        super().__init__(
            f"Rate limit exceeded for {scope_key}: {limit} requests per "
            f"{window_ms / 1000:g}s, retry in {retry_after_ms / 1000:.1f}s"
        )
        self.scope_key = scope_key
        self.limit = limit
        self.window_ms = window_ms
        self.retry_after_ms = retry_after_ms
