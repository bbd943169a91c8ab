"""
trading-core: pure paper-trading execution rules.

No I/O, no clock, no locks. Fill Pricer, Position Ledger and Account Cash
Ledger take records by value and return new values; execution.executor
persists them as one unit.
"""

from trading_core.cash_ledger import apply_cash
from trading_core.contracts import (
    Account,
    AccountType,
    ExecutionReport,
    Instrument,
    InstrumentType,
    Order,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    PnlSnapshot,
    Position,
    PositionResult,
    PositionResultKind,
    Quote,
)
from trading_core.errors import (
    ExecutionError,
    InsufficientPositionError,
    InvalidStateError,
    LockTimeoutError,
    NotFoundError,
    OrderValidationError,
    QuoteUnavailableError,
    UnsupportedAccountTypeError,
    UnsupportedOrderTypeError,
)
from trading_core.fill_pricer import price
from trading_core.position_ledger import apply_fill

__all__ = [
    "Account",
    "AccountType",
    "apply_cash",
    "apply_fill",
    "ExecutionError",
    "ExecutionReport",
    "InsufficientPositionError",
    "Instrument",
    "InstrumentType",
    "InvalidStateError",
    "LockTimeoutError",
    "NotFoundError",
    "Order",
    "OrderRequest",
    "OrderSide",
    "OrderStatus",
    "OrderType",
    "OrderValidationError",
    "PnlSnapshot",
    "Position",
    "PositionResult",
    "PositionResultKind",
    "price",
    "Quote",
    "QuoteUnavailableError",
    "UnsupportedAccountTypeError",
    "UnsupportedOrderTypeError",
]
