"""Tests for the Alpaca quote source (mocked SDK client). No network calls."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from market_data import get_alpaca_quote_source
from trading_core.errors import QuoteUnavailableError


@pytest.fixture
def client() -> MagicMock:
    with patch("alpaca.data.historical.StockHistoricalDataClient") as cls:
        yield cls.return_value


def _raw_quote(bid: float, ask: float, ts: datetime) -> MagicMock:
    q = MagicMock()
    q.bid_price = bid
    q.ask_price = ask
    q.timestamp = ts
    return q


def test_maps_quote_and_trade(client: MagicMock) -> None:
    ts = datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)
    trade = MagicMock()
    trade.price = 187.46
    client.get_stock_latest_quote.return_value = {"AAPL": _raw_quote(187.4, 187.5, ts)}
    client.get_stock_latest_trade.return_value = {"AAPL": trade}

    source = get_alpaca_quote_source("key", "secret")
    q = source.get_quote("aapl")

    assert q.symbol == "AAPL"
    assert q.bid == Decimal("187.4")
    assert q.ask == Decimal("187.5")
    assert q.last == Decimal("187.46")
    assert q.timestamp == ts
    client.get_stock_latest_quote.assert_called_once()


def test_naive_timestamp_treated_as_utc_and_missing_trade_uses_mid(client: MagicMock) -> None:
    client.get_stock_latest_quote.return_value = {"SPY": _raw_quote(500.0, 500.2, datetime(2024, 1, 15, 14, 30))}
    client.get_stock_latest_trade.return_value = {}

    q = get_alpaca_quote_source("key", "secret").get_quote("SPY")

    assert q.timestamp.tzinfo == timezone.utc
    assert q.last == Decimal("500.1")


def test_sdk_error_becomes_quote_unavailable(client: MagicMock) -> None:
    client.get_stock_latest_quote.side_effect = RuntimeError("429 Too Many Requests")
    with pytest.raises(QuoteUnavailableError, match="429"):
        get_alpaca_quote_source("key", "secret").get_quote("SPY")


def test_symbol_missing_from_response(client: MagicMock) -> None:
    client.get_stock_latest_quote.return_value = {}
    client.get_stock_latest_trade.return_value = {}
    with pytest.raises(QuoteUnavailableError):
        get_alpaca_quote_source("key", "secret").get_quote("SPY")


def test_requires_credentials() -> None:
    with pytest.raises(ValueError, match="APCA_API_KEY_ID"):
        get_alpaca_quote_source("", "")
