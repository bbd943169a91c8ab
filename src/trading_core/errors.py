"""
Error taxonomy for the execution path.

Every ExecutionError is terminal for a single execute() call and leaves the
order in its prior status. ``kind`` is the stable identifier surfaced to callers.
"""


class ExecutionError(Exception):
    """Base class for errors raised while filling an order."""

    kind = "EXECUTION_ERROR"


class InvalidStateError(ExecutionError):
    """Order is not in a status that allows the requested transition."""

    kind = "INVALID_STATE"


class UnsupportedOrderTypeError(ExecutionError):
    """STOP / STOP_LIMIT orders are not priced by the fill path."""

    kind = "UNSUPPORTED_ORDER_TYPE"


class UnsupportedAccountTypeError(ExecutionError):
    """Only PAPER accounts are filled; live broker routing does not exist."""

    kind = "UNSUPPORTED_ACCOUNT_TYPE"


class InsufficientPositionError(ExecutionError):
    """SELL quantity exceeds the current position (or there is none)."""

    kind = "INSUFFICIENT_POSITION"


class QuoteUnavailableError(ExecutionError):
    """Quote source failed; no price is fabricated."""

    kind = "QUOTE_UNAVAILABLE"


class OrderValidationError(ValueError):
    """Order request failed field validation before it was stored."""

    kind = "VALIDATION"


class NotFoundError(LookupError):
    """Referenced order, account or instrument does not exist."""

    kind = "NOT_FOUND"


class LockTimeoutError(ExecutionError):
    """Could not get the account/position lock or the database write lock in time."""

    kind = "LOCK_TIMEOUT"
