"""
Order rules: request validation, fill-path preconditions, cancellation.

Hard preconditions for the fill path, checked in order:
    1. order.status is PENDING            -> InvalidStateError
    2. order.type is MARKET or LIMIT      -> UnsupportedOrderTypeError
    3. account.type is PAPER              -> UnsupportedAccountTypeError
SELL quantity vs position is checked later, under the lock (check_sell_quantity).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from trading_core.contracts import (
    CANCELLABLE_STATUSES,
    EXECUTABLE_TYPES,
    LIMIT_PRICE_TYPES,
    STOP_PRICE_TYPES,
    ZERO,
    Account,
    AccountType,
    Order,
    OrderRequest,
    OrderSide,
    OrderStatus,
    OrderType,
    Position,
)
from trading_core.errors import (
    InsufficientPositionError,
    InvalidStateError,
    OrderValidationError,
    UnsupportedAccountTypeError,
    UnsupportedOrderTypeError,
)

MIN_QUANTITY = Decimal("0.01")


def to_decimal(value: Any, field: str) -> Decimal:
    """Coerce int/str/float/Decimal to Decimal via str() so 0.1 stays 0.1."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise OrderValidationError(f"{field} is not a number: {value!r}") from exc


@dataclass(frozen=True)
class ValidatedRequest:
    side: OrderSide
    type: OrderType
    quantity: Decimal
    limit_price: Decimal | None
    stop_price: Decimal | None
    time_in_force: str


def validate_request(request: OrderRequest) -> ValidatedRequest:
    """Field-level checks for a new order. Raises OrderValidationError."""
    try:
        side = OrderSide(str(request.side).upper())
    except ValueError:
        raise OrderValidationError(f"side must be BUY or SELL, got {request.side!r}") from None
    try:
        order_type = OrderType(str(request.type).upper())
    except ValueError:
        allowed = ", ".join(t.value for t in OrderType)
        raise OrderValidationError(f"type must be one of {allowed}, got {request.type!r}") from None

    quantity = to_decimal(request.quantity, "quantity")
    if not quantity.is_finite() or quantity < MIN_QUANTITY:
        raise OrderValidationError(f"quantity must be >= {MIN_QUANTITY}, got {quantity}")

    limit_price = None if request.limit_price is None else to_decimal(request.limit_price, "limit_price")
    stop_price = None if request.stop_price is None else to_decimal(request.stop_price, "stop_price")

    for name, value in (("limit_price", limit_price), ("stop_price", stop_price)):
        if value is not None and (not value.is_finite() or value < ZERO):
            raise OrderValidationError(f"{name} must be >= 0, got {value}")

    if order_type in LIMIT_PRICE_TYPES and limit_price is None:
        raise OrderValidationError(f"{order_type.value} orders require a limit price")
    if order_type not in LIMIT_PRICE_TYPES and limit_price is not None:
        raise OrderValidationError(f"{order_type.value} orders do not take a limit price")
    if order_type in STOP_PRICE_TYPES and stop_price is None:
        raise OrderValidationError(f"{order_type.value} orders require a stop price")
    if order_type not in STOP_PRICE_TYPES and stop_price is not None:
        raise OrderValidationError(f"{order_type.value} orders do not take a stop price")

    return ValidatedRequest(
        side=side,
        type=order_type,
        quantity=quantity,
        limit_price=limit_price,
        stop_price=stop_price,
        time_in_force=(request.time_in_force or "DAY").upper(),
    )


def check_executable(order: Order, account: Account) -> None:
    """Preconditions 1-3 of the fill path."""
    if order.status != OrderStatus.PENDING:
        raise InvalidStateError(f"Order {order.id} is {order.status.value}, expected PENDING")
    if order.type not in EXECUTABLE_TYPES:
        raise UnsupportedOrderTypeError(f"{order.type.value} orders are not implemented")
    if account.type != AccountType.PAPER:
        raise UnsupportedAccountTypeError(f"{account.type.value} trading is not implemented")


def check_sell_quantity(order: Order, position: Position | None) -> None:
    """SELL must not exceed the current position. BUY always passes."""
    if order.side != OrderSide.SELL:
        return
    held = position.quantity if position is not None else ZERO
    if order.quantity > held:
        raise InsufficientPositionError(
            f"Order {order.id} sells {order.quantity} but position holds {held}"
        )


def check_cancellable(order: Order) -> None:
    if order.status not in CANCELLABLE_STATUSES:
        raise InvalidStateError(f"Cannot cancel order {order.id} in status {order.status.value}")


def check_rejectable(order: Order) -> None:
    if order.status != OrderStatus.PENDING:
        raise InvalidStateError(f"Cannot reject order {order.id} in status {order.status.value}")
