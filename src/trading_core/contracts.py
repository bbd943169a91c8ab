"""
Data contracts for trading-core: Order, Position, Account, Instrument, Quote.

trading-core consumes these records by value and returns new ones; storage
belongs to execution.store. Plain dataclasses, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

ZERO = Decimal(0)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"
    STOP_LIMIT = "STOP_LIMIT"


class OrderStatus(str, Enum):
    """Order lifecycle. Only PENDING -> FILLED | REJECTED happens in the fill path."""

    PENDING = "PENDING"
    OPEN = "OPEN"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class AccountType(str, Enum):
    PAPER = "PAPER"
    LIVE = "LIVE"


class InstrumentType(str, Enum):
    STOCK = "STOCK"
    ETF = "ETF"
    OPTION = "OPTION"
    FUTURE = "FUTURE"
    CRYPTO = "CRYPTO"
    FOREX = "FOREX"


class PositionResultKind(str, Enum):
    """Outcome of applying one fill to a position."""

    NO_POSITION = "NO_POSITION"
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    CLOSED = "CLOSED"


# Statuses a caller may still cancel from.
CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.OPEN})

# Statuses counted as "open orders" in account summaries.
WORKING_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.OPEN, OrderStatus.PARTIALLY_FILLED})

# Order types that carry a limit / stop price.
LIMIT_PRICE_TYPES = frozenset({OrderType.LIMIT, OrderType.STOP_LIMIT})
STOP_PRICE_TYPES = frozenset({OrderType.STOP, OrderType.STOP_LIMIT})

# Order types the fill path knows how to price.
EXECUTABLE_TYPES = frozenset({OrderType.MARKET, OrderType.LIMIT})


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Instrument:
    id: str
    symbol: str
    type: InstrumentType
    name: str = ""
    underlying_symbol: str | None = None
    strike_price: Decimal | None = None
    expiry_date: str | None = None  # ISO date
    option_type: str | None = None  # "CALL" | "PUT"


@dataclass(frozen=True)
class Quote:
    """Top-of-book snapshot. bid <= ask is not guaranteed."""

    symbol: str
    bid: Decimal
    ask: Decimal
    last: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class Order:
    id: str
    account_id: str
    instrument_id: str
    side: OrderSide
    type: OrderType
    quantity: Decimal
    status: OrderStatus
    placed_at: datetime
    limit_price: Decimal | None = None
    stop_price: Decimal | None = None
    time_in_force: str = "DAY"
    filled_quantity: Decimal = ZERO
    average_fill_price: Decimal | None = None
    filled_at: datetime | None = None
    cancelled_at: datetime | None = None
    reject_reason: str | None = None


@dataclass(frozen=True)
class Position:
    """Net long holding of one instrument in one account. Never stored at quantity 0."""

    account_id: str
    instrument_id: str
    quantity: Decimal
    average_price: Decimal
    realized_pnl: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO


@dataclass(frozen=True)
class Account:
    id: str
    user_id: str
    type: AccountType
    currency: str
    cash: Decimal
    equity: Decimal
    margin_used: Decimal = ZERO


@dataclass(frozen=True)
class OrderRequest:
    """Caller input for placing an order; validated by order_rules.validate_request."""

    account_id: str
    instrument_id: str
    side: str
    type: str
    quantity: Decimal
    limit_price: Decimal | None = None
    stop_price: Decimal | None = None
    time_in_force: str = "DAY"


# ---------------------------------------------------------------------------
# Ledger results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PositionResult:
    """Position Ledger output. position is None for NO_POSITION and CLOSED."""

    kind: PositionResultKind
    position: Position | None
    realized_pnl_delta: Decimal = ZERO


@dataclass(frozen=True)
class CashResult:
    new_cash: Decimal
    new_equity: Decimal
    cash_delta: Decimal


@dataclass(frozen=True)
class ExecutionReport:
    """What execute() hands back to the order-submission workflow."""

    order_id: str
    status: OrderStatus
    fill_price: Decimal | None = None
    cost: Decimal | None = None
    realized_pnl: Decimal | None = None
    position_result: PositionResultKind | None = None
    error: str | None = None
    message: str = ""


@dataclass(frozen=True)
class PnlSnapshot:
    """Account state recorded by each revaluation; the performance history."""

    account_id: str
    taken_at: datetime
    cash: Decimal
    market_value: Decimal
    equity: Decimal
    realized_pnl: Decimal
    unrealized_pnl: Decimal
