"""Account Cash Ledger: cash/equity effect of one fill. Equity tracks cash 1:1 at fill time."""

from __future__ import annotations

from decimal import Decimal

from trading_core.contracts import Account, CashResult, OrderSide


def fill_cost(fill_price: Decimal, fill_quantity: Decimal) -> Decimal:
    return fill_price * fill_quantity


def apply_cash(account: Account, side: OrderSide, fill_price: Decimal, fill_quantity: Decimal) -> CashResult:
    """BUY debits cost, SELL credits it. No buying-power check; cash may go negative."""
    cost = fill_cost(fill_price, fill_quantity)
    delta = -cost if side == OrderSide.BUY else cost
    return CashResult(
        new_cash=account.cash + delta,
        new_equity=account.equity + delta,
        cash_delta=delta,
    )
