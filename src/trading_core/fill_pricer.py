"""
Fill Pricer: order + quote -> fill price.

MARKET BUY lifts the ask, MARKET SELL hits the bid. LIMIT fills at the stated
limit price whether or not it is marketable against the quote. Quote values are
passed through unchanged, including zero or negative prices.
"""

from __future__ import annotations

from decimal import Decimal

from trading_core.contracts import Order, OrderSide, OrderType, Quote
from trading_core.errors import UnsupportedOrderTypeError


def price(order: Order, quote: Quote) -> Decimal:
    """Return the deterministic fill price for *order* against *quote*."""
    if order.type == OrderType.MARKET:
        return quote.ask if order.side == OrderSide.BUY else quote.bid
    if order.type == OrderType.LIMIT:
        if order.limit_price is None:
            raise UnsupportedOrderTypeError(f"LIMIT order {order.id} has no limit price")
        return order.limit_price
    raise UnsupportedOrderTypeError(f"{order.type.value} orders are not supported by the paper fill path")
