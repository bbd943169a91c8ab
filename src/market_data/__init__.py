"""
Market data: quote sources consumed by the fill path, a TTL cache, and a refresher.

Depends on trading_core.contracts for Quote; no dependency from trading_core back to market_data.
"""

from market_data.quotes import CachedQuoteSource, QuoteSource, StaticQuoteSource, make_quote
from market_data.refresher import QuoteRefresher

__all__ = [
    "CachedQuoteSource",
    "make_quote",
    "QuoteRefresher",
    "QuoteSource",
    "StaticQuoteSource",
]


def get_alpaca_quote_source(api_key: str, api_secret: str, *, feed: str = "iex"):
    """Lazy import to avoid loading alpaca-py when not used."""
    from market_data.alpaca_quotes import AlpacaQuoteSource

    return AlpacaQuoteSource(api_key, api_secret, feed=feed)
