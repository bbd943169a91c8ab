"""
Quote sources: protocol, a configured static source, and a TTL cache.

The execution path only ever calls ``get_quote(symbol)``. A source that cannot
produce a quote raises QuoteUnavailableError; it never invents a price.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Mapping, Protocol

from trading_core.contracts import Quote
from trading_core.errors import QuoteUnavailableError


class QuoteSource(Protocol):
    """Protocol for quote sources. Implement per provider (Alpaca, static, ...)."""

    def get_quote(self, symbol: str) -> Quote:
        """Return the current bid/ask/last for *symbol*."""
        ...


def make_quote(
    symbol: str,
    bid: Decimal | float | str,
    ask: Decimal | float | str,
    last: Decimal | float | str | None = None,
    timestamp: datetime | None = None,
) -> Quote:
    """Build a Quote from loose numeric input. last defaults to the bid/ask midpoint."""
    bid_d = Decimal(str(bid))
    ask_d = Decimal(str(ask))
    last_d = Decimal(str(last)) if last is not None else (bid_d + ask_d) / 2
    return Quote(
        symbol=symbol.upper(),
        bid=bid_d,
        ask=ask_d,
        last=last_d,
        timestamp=timestamp or datetime.now(timezone.utc),
    )


class StaticQuoteSource:
    """Serves quotes set in config or by tests. Unknown symbols are unavailable."""

    def __init__(self, quotes: Mapping[str, Quote] | None = None) -> None:
        self._quotes: dict[str, Quote] = {k.upper(): v for k, v in (quotes or {}).items()}
        self._lock = threading.Lock()

    def set_quote(
        self,
        symbol: str,
        bid: Decimal | float | str,
        ask: Decimal | float | str,
        last: Decimal | float | str | None = None,
    ) -> Quote:
        quote = make_quote(symbol, bid, ask, last)
        with self._lock:
            self._quotes[quote.symbol] = quote
        return quote

    def symbols(self) -> list[str]:
        with self._lock:
            return sorted(self._quotes)

    def get_quote(self, symbol: str) -> Quote:
        with self._lock:
            quote = self._quotes.get(symbol.upper())
        if quote is None:
            raise QuoteUnavailableError(f"No quote configured for {symbol}")
        return quote


@dataclass(frozen=True)
class _CacheEntry:
    quote: Quote
    stored_at: float


class CachedQuoteSource:
    """
    TTL cache in front of another QuoteSource.

    ``clock`` returns seconds (monotonic by default) and is injected so tests
    and the refresher control expiry. The cache is owned by whoever builds it;
    there is no module-level cache.
    """

    def __init__(
        self,
        source: QuoteSource,
        *,
        ttl_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._source = source
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def peek(self, symbol: str) -> Quote | None:
        """Cached quote regardless of age, or None."""
        with self._lock:
            entry = self._entries.get(symbol.upper())
        return entry.quote if entry else None

    def put(self, quote: Quote) -> None:
        with self._lock:
            self._entries[quote.symbol.upper()] = _CacheEntry(quote, self._clock())

    def invalidate(self, symbol: str | None = None) -> None:
        with self._lock:
            if symbol is None:
                self._entries.clear()
            else:
                self._entries.pop(symbol.upper(), None)

    def refresh(self, symbol: str) -> Quote:
        """Fetch from the underlying source and store, ignoring any cached value."""
        quote = self._source.get_quote(symbol)
        self.put(quote)
        return quote

    def get_quote(self, symbol: str) -> Quote:
        with self._lock:
            entry = self._entries.get(symbol.upper())
        if entry is not None and self._clock() - entry.stored_at < self._ttl:
            return entry.quote
        return self.refresh(symbol)
