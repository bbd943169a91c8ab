"""
Alpaca quote source: implements QuoteSource using the alpaca-py SDK.

bid/ask come from the latest quote, last from the latest trade.
Free tier uses IEX data; SIP requires Algo Trader Plus subscription.
"""

import logging
from datetime import timezone
from decimal import Decimal

from trading_core.contracts import Quote
from trading_core.errors import QuoteUnavailableError

logger = logging.getLogger("ptrade.quotes")


def _dec(value) -> Decimal:
    return Decimal(str(value))


class AlpacaQuoteSource:
    """
    Latest quotes from Alpaca Market Data API.

    Uses StockHistoricalDataClient from alpaca-py.
    API keys via constructor (typically from AppConfig, sourced from env vars).
    """

    def __init__(self, api_key: str, api_secret: str, *, feed: str = "iex") -> None:
        if not api_key or not api_secret:
            raise ValueError(
                "Alpaca API key and secret are required. "
                "Set APCA_API_KEY_ID and APCA_API_SECRET_KEY environment variables."
            )
        from alpaca.data.historical import StockHistoricalDataClient

        self._client = StockHistoricalDataClient(api_key, api_secret)
        self._feed = feed.lower()

    def get_quote(self, symbol: str) -> Quote:
        from alpaca.data.enums import DataFeed
        from alpaca.data.requests import StockLatestQuoteRequest, StockLatestTradeRequest

        symbol = symbol.upper()
        feed = DataFeed(self._feed)
        try:
            quotes = self._client.get_stock_latest_quote(
                StockLatestQuoteRequest(symbol_or_symbols=symbol, feed=feed)
            )
            trades = self._client.get_stock_latest_trade(
                StockLatestTradeRequest(symbol_or_symbols=symbol, feed=feed)
            )
        except Exception as exc:
            raise QuoteUnavailableError(f"Alpaca quote request failed for {symbol}: {exc}") from exc

        raw_quote = quotes.get(symbol)
        if raw_quote is None:
            raise QuoteUnavailableError(f"Alpaca returned no quote for {symbol}")
        raw_trade = trades.get(symbol)

        ts = raw_quote.timestamp
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        else:
            ts = ts.astimezone(timezone.utc)

        bid = _dec(raw_quote.bid_price)
        ask = _dec(raw_quote.ask_price)
        last = _dec(raw_trade.price) if raw_trade is not None else (bid + ask) / 2
        logger.debug("Alpaca quote %s bid=%s ask=%s last=%s", symbol, bid, ask, last)
        return Quote(symbol=symbol, bid=bid, ask=ask, last=last, timestamp=ts)
