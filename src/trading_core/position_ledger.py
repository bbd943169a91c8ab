"""
Position Ledger: apply one fill to a single account+instrument position.

Responsibilities:
    - Open a position on the first BUY (CREATED)
    - Weighted-average cost basis on further BUYs (UPDATED, no realized P&L)
    - Reduce on SELL, realizing (fill - average) * qty (UPDATED)
    - Delete the position when a SELL exactly closes it (CLOSED)

A SELL against no position yields NO_POSITION; short positions are never
opened here. A SELL larger than the position is refused.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from trading_core.contracts import (
    ZERO,
    OrderSide,
    Position,
    PositionResult,
    PositionResultKind,
)
from trading_core.errors import InsufficientPositionError


def weighted_average(
    quantity: Decimal,
    average_price: Decimal,
    fill_quantity: Decimal,
    fill_price: Decimal,
) -> Decimal:
    """(avg * qty + fill_price * fill_qty) / (qty + fill_qty)."""
    return (average_price * quantity + fill_price * fill_quantity) / (quantity + fill_quantity)


def _buy(
    existing: Position | None,
    account_id: str,
    instrument_id: str,
    fill_quantity: Decimal,
    fill_price: Decimal,
) -> PositionResult:
    if existing is None:
        return PositionResult(
            kind=PositionResultKind.CREATED,
            position=Position(
                account_id=account_id,
                instrument_id=instrument_id,
                quantity=fill_quantity,
                average_price=fill_price,
            ),
        )
    new_qty = existing.quantity + fill_quantity
    new_avg = weighted_average(existing.quantity, existing.average_price, fill_quantity, fill_price)
    return PositionResult(
        kind=PositionResultKind.UPDATED,
        position=replace(existing, quantity=new_qty, average_price=new_avg),
    )


def _sell(existing: Position | None, fill_quantity: Decimal, fill_price: Decimal) -> PositionResult:
    if existing is None:
        return PositionResult(kind=PositionResultKind.NO_POSITION, position=None)
    if fill_quantity > existing.quantity:
        raise InsufficientPositionError(
            f"Cannot sell {fill_quantity}: position holds {existing.quantity}"
        )

    realized = (fill_price - existing.average_price) * fill_quantity
    if fill_quantity == existing.quantity:
        # Realized P&L on a closed position is reported, not retained.
        return PositionResult(kind=PositionResultKind.CLOSED, position=None, realized_pnl_delta=realized)

    return PositionResult(
        kind=PositionResultKind.UPDATED,
        position=replace(
            existing,
            quantity=existing.quantity - fill_quantity,
            realized_pnl=existing.realized_pnl + realized,
        ),
        realized_pnl_delta=realized,
    )


def apply_fill(
    existing: Position | None,
    side: OrderSide,
    fill_quantity: Decimal,
    fill_price: Decimal,
    *,
    account_id: str = "",
    instrument_id: str = "",
) -> PositionResult:
    """Apply a fill and return the resulting position state.

    Parameters
    ----------
    existing:
        Current position for the pair, or None when flat.
    side:
        Side of the filled order.
    fill_quantity:
        Quantity filled; must be > 0.
    fill_price:
        Price from the Fill Pricer.
    account_id, instrument_id:
        Identity for a newly created position. Ignored when *existing* is given.

    Raises
    ------
    InsufficientPositionError
        SELL quantity exceeds the existing position.
    """
    if fill_quantity <= ZERO:
        raise ValueError(f"fill_quantity must be > 0, got {fill_quantity}")
    if side == OrderSide.BUY:
        return _buy(existing, account_id, instrument_id, fill_quantity, fill_price)
    return _sell(existing, fill_quantity, fill_price)
