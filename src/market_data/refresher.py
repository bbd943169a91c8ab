"""
Quote refresher: scheduled task that keeps a CachedQuoteSource warm.

Clock and sleep are injected; the loop owns no global state. Ctrl+C stops
``run`` cleanly when driven from the CLI.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Sequence

from market_data.quotes import CachedQuoteSource
from trading_core.contracts import Quote
from trading_core.errors import QuoteUnavailableError

logger = logging.getLogger("ptrade.quotes")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuoteRefresher:
    """Pull fresh quotes for *symbols* into *cache* every *interval_seconds*."""

    def __init__(
        self,
        cache: CachedQuoteSource,
        symbols: Sequence[str],
        *,
        interval_seconds: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
        on_refresh: Callable[[dict[str, Quote]], None] | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be > 0, got {interval_seconds}")
        self._cache = cache
        self._symbols = [s.upper() for s in symbols]
        self._interval = interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._on_refresh = on_refresh
        self.last_run: datetime | None = None
        self.failures: dict[str, str] = {}

    def refresh_once(self) -> dict[str, Quote]:
        """One pass over all symbols. A failing symbol keeps its previous cached quote."""
        fresh: dict[str, Quote] = {}
        self.failures = {}
        for symbol in self._symbols:
            try:
                fresh[symbol] = self._cache.refresh(symbol)
            except QuoteUnavailableError as exc:
                self.failures[symbol] = str(exc)
                logger.warning("Quote refresh failed for %s: %s", symbol, exc)
        self.last_run = self._clock()
        if self._on_refresh is not None:
            self._on_refresh(fresh)
        return fresh

    def run(self, stop_after: int | None = None) -> int:
        """Refresh, sleep, repeat. Returns the number of completed passes."""
        passes = 0
        try:
            while stop_after is None or passes < stop_after:
                self.refresh_once()
                passes += 1
                if stop_after is not None and passes >= stop_after:
                    break
                self._sleep(self._interval)
        except KeyboardInterrupt:
            logger.info("Quote refresher stopped after %d pass(es)", passes)
        return passes
