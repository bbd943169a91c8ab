"""
Human-readable output for the terminal.

Every CLI command uses these formatters. The journal receives the same data
as JSON.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Mapping, Sequence

from trading_core.contracts import (
    Account,
    ExecutionReport,
    Instrument,
    Order,
    OrderStatus,
    PnlSnapshot,
    Position,
    Quote,
)

if TYPE_CHECKING:
    from execution.catalog import OptionsExpiry
    from execution.portfolio import AccountSummary, Revaluation


def _money(value: Decimal | None) -> str:
    if value is None:
        return "-"
    return f"{value:,.2f}"


def _qty(value: Decimal) -> str:
    text = format(value.normalize(), "f")
    return text


def format_account(account: Account) -> str:
    return (
        f"{account.id}  {account.type.value:5s} {account.currency}  "
        f"user={account.user_id}  cash={_money(account.cash)}  equity={_money(account.equity)}"
    )


def format_account_summary(summary: "AccountSummary", symbols: Mapping[str, str]) -> str:
    acct = summary.account
    lines = [
        f"=== Account Status: {acct.id} ===",
        f"Type         : {acct.type.value} ({acct.currency})",
        f"Cash         : {_money(acct.cash)}",
        f"Equity       : {_money(acct.equity)}",
        f"Margin used  : {_money(acct.margin_used)}",
        f"Realized P&L : {_money(summary.total_realized_pnl)}",
        f"Unrealized   : {_money(summary.total_unrealized_pnl)}",
        f"Total P&L    : {_money(summary.total_pnl)}",
        f"Positions    : {summary.positions_count}",
        f"Open orders  : {summary.open_orders_count}",
    ]
    if summary.positions:
        lines.append("")
        lines.append(format_positions(summary.positions, symbols))
    return "\n".join(lines)


def format_positions(positions: Sequence[Position], symbols: Mapping[str, str]) -> str:
    if not positions:
        return "No open positions."
    lines = [f"{'Symbol':8s} {'Qty':>12s} {'Avg price':>12s} {'Realized':>12s} {'Unrealized':>12s}"]
    for p in positions:
        lines.append(
            f"{symbols.get(p.instrument_id, p.instrument_id[:8]):8s} {_qty(p.quantity):>12s} "
            f"{_money(p.average_price):>12s} {_money(p.realized_pnl):>12s} {_money(p.unrealized_pnl):>12s}"
        )
    return "\n".join(lines)


def format_order(order: Order, symbol: str = "") -> str:
    price = ""
    if order.limit_price is not None:
        price += f" limit={_money(order.limit_price)}"
    if order.stop_price is not None:
        price += f" stop={_money(order.stop_price)}"
    line = (
        f"{order.id}  {order.status.value:9s} {order.side.value:4s} {_qty(order.quantity)} "
        f"{symbol or order.instrument_id[:8]} {order.type.value}{price}"
    )
    if order.status == OrderStatus.FILLED:
        line += f"  @ {_money(order.average_fill_price)}"
    if order.reject_reason:
        line += f"  ({order.reject_reason})"
    return line


def format_orders(orders: Sequence[Order], symbols: Mapping[str, str]) -> str:
    if not orders:
        return "No orders."
    return "\n".join(format_order(o, symbols.get(o.instrument_id, "")) for o in orders)


def format_execution_report(report: ExecutionReport, symbol: str = "") -> str:
    if report.status == OrderStatus.FILLED:
        lines = [
            f"Order {report.order_id} FILLED {symbol} @ {_money(report.fill_price)}",
            f"  Cost         : {_money(report.cost)}",
            f"  Position     : {report.position_result.value if report.position_result else '-'}",
        ]
        if report.realized_pnl:
            lines.append(f"  Realized P&L : {_money(report.realized_pnl)}")
        return "\n".join(lines)
    return f"Order {report.order_id} REJECTED [{report.error}] {report.message}"


def format_instrument(instrument: Instrument) -> str:
    extra = ""
    if instrument.strike_price is not None:
        extra = f" {instrument.option_type or ''} {_money(instrument.strike_price)} exp {instrument.expiry_date or '?'}"
    name = f"  {instrument.name}" if instrument.name else ""
    return f"{instrument.id}  {instrument.symbol:8s} {instrument.type.value}{extra}{name}"


def format_quote(quote: Quote) -> str:
    return (
        f"{quote.symbol}  bid {_money(quote.bid)}  ask {_money(quote.ask)}  "
        f"last {_money(quote.last)}  @ {quote.timestamp.isoformat()}"
    )


def format_revaluation(reval: "Revaluation") -> str:
    return "\n".join(
        [
            f"=== Revaluation: {reval.account_id} ===",
            f"Cash         : {_money(reval.cash)}",
            f"Market value : {_money(reval.market_value)}",
            f"Equity       : {_money(reval.equity)}",
            f"Unrealized   : {_money(reval.unrealized_pnl)}",
        ]
    )


def format_options_chain(underlying: str, chain: Mapping[str, "OptionsExpiry"]) -> str:
    if not chain:
        return f"No options listed for {underlying.upper()}."
    lines = [f"=== Options chain: {underlying.upper()} ==="]
    for expiry, group in chain.items():
        lines.append(f"{expiry}  ({len(group.calls)} calls, {len(group.puts)} puts)")
        for label, options in (("CALL", group.calls), ("PUT", group.puts)):
            for o in options:
                lines.append(f"  {label:4s} {_money(o.strike_price):>10s}  {o.symbol}")
    return "\n".join(lines)


def format_performance(account_id: str, snapshots: Sequence[PnlSnapshot], days: int) -> str:
    if not snapshots:
        return f"No snapshots for {account_id} in the last {days} day(s). Run 'ptrade revalue' first."
    lines = [
        f"=== Performance: {account_id} (last {days} day(s)) ===",
        f"{'Taken at':25s} {'Equity':>14s} {'Cash':>14s} {'Realized':>12s} {'Unrealized':>12s}",
    ]
    for s in snapshots:
        lines.append(
            f"{s.taken_at.isoformat(timespec='seconds'):25s} {_money(s.equity):>14s} {_money(s.cash):>14s} "
            f"{_money(s.realized_pnl):>12s} {_money(s.unrealized_pnl):>12s}"
        )
    change = snapshots[-1].equity - snapshots[0].equity
    lines.append(f"Equity change: {_money(change)}")
    return "\n".join(lines)
