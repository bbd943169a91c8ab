"""
Accounts and portfolio views over the ledger store.

Opening balances follow the paper-trading convention: PAPER accounts start
with the configured initial balance as both cash and equity, LIVE accounts at 0.
Revaluation is the mark-to-market pass the fill path leaves to its caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from execution.locks import KeyedLocks, account_key
from execution.store import LedgerStore
from market_data.quotes import QuoteSource
from trading_core.contracts import ZERO, Account, AccountType, PnlSnapshot, Position

logger = logging.getLogger("ptrade.portfolio")


@dataclass(frozen=True)
class AccountSummary:
    account: Account
    positions: list[Position]
    total_realized_pnl: Decimal
    total_unrealized_pnl: Decimal
    open_orders_count: int

    @property
    def total_pnl(self) -> Decimal:
        return self.total_realized_pnl + self.total_unrealized_pnl

    @property
    def positions_count(self) -> int:
        return len(self.positions)


@dataclass(frozen=True)
class Revaluation:
    account_id: str
    cash: Decimal
    market_value: Decimal
    equity: Decimal
    unrealized_pnl: Decimal


def open_account(
    store: LedgerStore,
    user_id: str,
    account_type: AccountType = AccountType.PAPER,
    currency: str = "USD",
    *,
    initial_balance: Decimal = Decimal("100000"),
    now: datetime | None = None,
) -> Account:
    opening = initial_balance if account_type == AccountType.PAPER else ZERO
    return store.create_account(
        user_id,
        account_type,
        currency.upper(),
        opening,
        created_at=now or datetime.now(timezone.utc),
    )


def account_summary(store: LedgerStore, account_id: str) -> AccountSummary:
    account = store.get_account(account_id)
    positions = store.list_positions(account_id)
    return AccountSummary(
        account=account,
        positions=positions,
        total_realized_pnl=sum((p.realized_pnl for p in positions), ZERO),
        total_unrealized_pnl=sum((p.unrealized_pnl for p in positions), ZERO),
        open_orders_count=store.count_working_orders(account_id),
    )


def revalue_account(
    store: LedgerStore,
    account_id: str,
    quotes: QuoteSource,
    *,
    locks: KeyedLocks | None = None,
    now: datetime | None = None,
) -> Revaluation:
    """Mark every position to quote.last and set equity = cash + market value.

    Quotes are fetched before the write transaction. Takes the same account
    lock as the fill path when *locks* is shared with the executor. Each pass
    also records a P&L snapshot in the same transaction; see performance().
    """
    symbols: dict[str, str] = {}
    for pos in store.list_positions(account_id):
        symbols[pos.instrument_id] = store.get_instrument(pos.instrument_id).symbol
    marks = {instrument_id: quotes.get_quote(symbol).last for instrument_id, symbol in symbols.items()}

    locks = locks if locks is not None else KeyedLocks()
    taken_at = now or datetime.now(timezone.utc)
    with locks.hold(account_key(account_id)):
        with store.transaction() as conn:
            account = store.get_account(account_id, conn)
            market_value = ZERO
            unrealized_total = ZERO
            realized_total = ZERO
            for pos in store.list_positions(account_id, conn):
                last = marks.get(pos.instrument_id)
                if last is None:
                    # Opened after the quotes were fetched; mark at cost.
                    last = pos.average_price
                unrealized = (last - pos.average_price) * pos.quantity
                store.update_unrealized(conn, account_id, pos.instrument_id, unrealized)
                market_value += last * pos.quantity
                unrealized_total += unrealized
                realized_total += pos.realized_pnl
            equity = account.cash + market_value
            store.update_equity(conn, account_id, equity, account.margin_used)
            store.insert_snapshot(
                conn,
                PnlSnapshot(
                    account_id=account_id,
                    taken_at=taken_at,
                    cash=account.cash,
                    market_value=market_value,
                    equity=equity,
                    realized_pnl=realized_total,
                    unrealized_pnl=unrealized_total,
                ),
            )

    logger.info("Revalued account %s: equity %s (market value %s)", account_id, equity, market_value)
    return Revaluation(
        account_id=account_id,
        cash=account.cash,
        market_value=market_value,
        equity=equity,
        unrealized_pnl=unrealized_total,
    )


def performance(
    store: LedgerStore,
    account_id: str,
    days: int = 30,
    *,
    now: datetime | None = None,
) -> list[PnlSnapshot]:
    """P&L snapshots from the last *days* days, oldest first."""
    if days < 0:
        raise ValueError("days must be >= 0")
    store.get_account(account_id)
    since = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    return store.list_snapshots(account_id, since)
