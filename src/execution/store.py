"""
Ledger store: accounts, instruments, orders, positions and P&L snapshots in SQLite.

Money and quantities are stored as TEXT (Decimal strings) so they round-trip
exactly. Timestamps are stored as UTC ISO strings.

Every multi-row write goes through ``transaction()``, which opens a dedicated
connection and issues ``BEGIN IMMEDIATE``: a second writer, in this process or
another one, waits on the database lock until the first commits or rolls back.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterator

from trading_core.contracts import (
    WORKING_STATUSES,
    ZERO,
    Account,
    AccountType,
    Instrument,
    InstrumentType,
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    PnlSnapshot,
    Position,
    PositionResult,
    PositionResultKind,
)
from trading_core.errors import InvalidStateError, LockTimeoutError, NotFoundError
from trading_core.order_rules import check_cancellable, check_rejectable

logger = logging.getLogger("ptrade.store")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS accounts (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        type TEXT NOT NULL,
        currency TEXT NOT NULL,
        cash TEXT NOT NULL,
        equity TEXT NOT NULL,
        margin_used TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS instruments (
        id TEXT PRIMARY KEY,
        symbol TEXT NOT NULL,
        type TEXT NOT NULL,
        name TEXT NOT NULL DEFAULT '',
        underlying_symbol TEXT,
        strike_price TEXT,
        expiry_date TEXT,
        option_type TEXT
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS instruments_identity ON instruments (
        symbol, type, COALESCE(strike_price, ''), COALESCE(expiry_date, ''), COALESCE(option_type, '')
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        account_id TEXT NOT NULL REFERENCES accounts (id),
        instrument_id TEXT NOT NULL REFERENCES instruments (id),
        side TEXT NOT NULL,
        type TEXT NOT NULL,
        quantity TEXT NOT NULL,
        limit_price TEXT,
        stop_price TEXT,
        time_in_force TEXT NOT NULL,
        status TEXT NOT NULL,
        filled_quantity TEXT NOT NULL,
        average_fill_price TEXT,
        placed_at TEXT NOT NULL,
        filled_at TEXT,
        cancelled_at TEXT,
        reject_reason TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS orders_account ON orders (account_id, placed_at)",
    """
    CREATE TABLE IF NOT EXISTS positions (
        account_id TEXT NOT NULL REFERENCES accounts (id),
        instrument_id TEXT NOT NULL REFERENCES instruments (id),
        quantity TEXT NOT NULL,
        average_price TEXT NOT NULL,
        realized_pnl TEXT NOT NULL,
        unrealized_pnl TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (account_id, instrument_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pnl_snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        account_id TEXT NOT NULL REFERENCES accounts (id),
        taken_at TEXT NOT NULL,
        cash TEXT NOT NULL,
        market_value TEXT NOT NULL,
        equity TEXT NOT NULL,
        realized_pnl TEXT NOT NULL,
        unrealized_pnl TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS pnl_snapshots_account ON pnl_snapshots (account_id, taken_at)",
)


def _utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _ts(value: datetime | None) -> str | None:
    return None if value is None else _utc(value).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return _utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _dec(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _parse_dec(value: str | None) -> Decimal | None:
    return None if value is None else Decimal(value)


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(
        id=row["id"],
        user_id=row["user_id"],
        type=AccountType(row["type"]),
        currency=row["currency"],
        cash=Decimal(row["cash"]),
        equity=Decimal(row["equity"]),
        margin_used=Decimal(row["margin_used"]),
    )


def _row_to_instrument(row: sqlite3.Row) -> Instrument:
    return Instrument(
        id=row["id"],
        symbol=row["symbol"],
        type=InstrumentType(row["type"]),
        name=row["name"],
        underlying_symbol=row["underlying_symbol"],
        strike_price=_parse_dec(row["strike_price"]),
        expiry_date=row["expiry_date"],
        option_type=row["option_type"],
    )


def _row_to_order(row: sqlite3.Row) -> Order:
    return Order(
        id=row["id"],
        account_id=row["account_id"],
        instrument_id=row["instrument_id"],
        side=OrderSide(row["side"]),
        type=OrderType(row["type"]),
        quantity=Decimal(row["quantity"]),
        status=OrderStatus(row["status"]),
        placed_at=_parse_ts(row["placed_at"]),
        limit_price=_parse_dec(row["limit_price"]),
        stop_price=_parse_dec(row["stop_price"]),
        time_in_force=row["time_in_force"],
        filled_quantity=Decimal(row["filled_quantity"]),
        average_fill_price=_parse_dec(row["average_fill_price"]),
        filled_at=_parse_ts(row["filled_at"]),
        cancelled_at=_parse_ts(row["cancelled_at"]),
        reject_reason=row["reject_reason"],
    )


def _row_to_position(row: sqlite3.Row) -> Position:
    return Position(
        account_id=row["account_id"],
        instrument_id=row["instrument_id"],
        quantity=Decimal(row["quantity"]),
        average_price=Decimal(row["average_price"]),
        realized_pnl=Decimal(row["realized_pnl"]),
        unrealized_pnl=Decimal(row["unrealized_pnl"]),
    )


def _row_to_snapshot(row: sqlite3.Row) -> PnlSnapshot:
    return PnlSnapshot(
        account_id=row["account_id"],
        taken_at=_parse_ts(row["taken_at"]),
        cash=Decimal(row["cash"]),
        market_value=Decimal(row["market_value"]),
        equity=Decimal(row["equity"]),
        realized_pnl=Decimal(row["realized_pnl"]),
        unrealized_pnl=Decimal(row["unrealized_pnl"]),
    )


class LedgerStore:
    """SQLite-backed store for the execution path. One file per path."""

    def __init__(self, path: str | Path, *, busy_timeout: float = 10.0) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout = busy_timeout
        self._init_schema()

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._path), timeout=self._busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_schema(self) -> None:
        with self.transaction() as c:
            for statement in _SCHEMA:
                c.execute(statement)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction: commit on success, roll back on any exception.

        Raises LockTimeoutError when another writer holds the database past
        the busy timeout.
        """
        conn = self._connect()
        try:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as exc:
                if "locked" not in str(exc) and "busy" not in str(exc):
                    raise
                raise LockTimeoutError(f"Database write lock busy: {exc}") from exc
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    @contextmanager
    def _reader(self, conn: sqlite3.Connection | None) -> Iterator[sqlite3.Connection]:
        """Reuse the caller's transaction connection, or open a short-lived one."""
        if conn is not None:
            yield conn
            return
        own = self._connect()
        try:
            yield own
        finally:
            own.close()

    # ---------- accounts ----------

    def create_account(
        self,
        user_id: str,
        account_type: AccountType,
        currency: str,
        opening_cash: Decimal,
        *,
        created_at: datetime,
    ) -> Account:
        account = Account(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=account_type,
            currency=currency,
            cash=opening_cash,
            equity=opening_cash,
        )
        with self.transaction() as c:
            c.execute(
                """INSERT INTO accounts (id, user_id, type, currency, cash, equity, margin_used, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    account.id,
                    account.user_id,
                    account.type.value,
                    account.currency,
                    _dec(account.cash),
                    _dec(account.equity),
                    _dec(account.margin_used),
                    _ts(created_at),
                ),
            )
        logger.info("Opened %s account %s for user %s", account.type.value, account.id, user_id)
        return account

    def get_account(self, account_id: str, conn: sqlite3.Connection | None = None) -> Account:
        with self._reader(conn) as c:
            row = c.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Account not found: {account_id}")
        return _row_to_account(row)

    def list_accounts(self, user_id: str | None = None) -> list[Account]:
        with self._reader(None) as c:
            if user_id:
                rows = c.execute(
                    "SELECT * FROM accounts WHERE user_id = ? ORDER BY created_at", (user_id,)
                ).fetchall()
            else:
                rows = c.execute("SELECT * FROM accounts ORDER BY created_at").fetchall()
        return [_row_to_account(r) for r in rows]

    def update_account_balances(
        self,
        conn: sqlite3.Connection,
        account_id: str,
        cash: Decimal,
        equity: Decimal,
    ) -> None:
        cur = conn.execute(
            "UPDATE accounts SET cash = ?, equity = ? WHERE id = ?",
            (_dec(cash), _dec(equity), account_id),
        )
        if cur.rowcount != 1:
            raise NotFoundError(f"Account not found: {account_id}")

    def update_equity(
        self,
        conn: sqlite3.Connection,
        account_id: str,
        equity: Decimal,
        margin_used: Decimal,
    ) -> None:
        cur = conn.execute(
            "UPDATE accounts SET equity = ?, margin_used = ? WHERE id = ?",
            (_dec(equity), _dec(margin_used), account_id),
        )
        if cur.rowcount != 1:
            raise NotFoundError(f"Account not found: {account_id}")

    # ---------- instruments ----------

    def upsert_instrument(
        self,
        symbol: str,
        instrument_type: InstrumentType,
        *,
        name: str = "",
        underlying_symbol: str | None = None,
        strike_price: Decimal | None = None,
        expiry_date: str | None = None,
        option_type: str | None = None,
    ) -> Instrument:
        """Insert, or update the name/underlying of, the instrument with this identity."""
        symbol = symbol.upper()
        if underlying_symbol is not None:
            underlying_symbol = underlying_symbol.upper()
        with self.transaction() as c:
            row = c.execute(
                """SELECT id FROM instruments
                   WHERE symbol = ? AND type = ?
                     AND COALESCE(strike_price, '') = COALESCE(?, '')
                     AND COALESCE(expiry_date, '') = COALESCE(?, '')
                     AND COALESCE(option_type, '') = COALESCE(?, '')""",
                (symbol, instrument_type.value, _dec(strike_price), expiry_date, option_type),
            ).fetchone()
            if row is None:
                instrument_id = str(uuid.uuid4())
                c.execute(
                    """INSERT INTO instruments
                       (id, symbol, type, name, underlying_symbol, strike_price, expiry_date, option_type)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        instrument_id,
                        symbol,
                        instrument_type.value,
                        name,
                        underlying_symbol,
                        _dec(strike_price),
                        expiry_date,
                        option_type,
                    ),
                )
            else:
                instrument_id = row["id"]
                c.execute(
                    "UPDATE instruments SET name = ?, underlying_symbol = ? WHERE id = ?",
                    (name, underlying_symbol, instrument_id),
                )
            return self.get_instrument(instrument_id, c)

    def get_instrument(self, instrument_id: str, conn: sqlite3.Connection | None = None) -> Instrument:
        with self._reader(conn) as c:
            row = c.execute("SELECT * FROM instruments WHERE id = ?", (instrument_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Instrument not found: {instrument_id}")
        return _row_to_instrument(row)

    def find_instrument(self, symbol: str, instrument_type: InstrumentType | None = None) -> Instrument | None:
        """First instrument with this symbol (and type, when given), or None."""
        with self._reader(None) as c:
            q = "SELECT * FROM instruments WHERE symbol = ?"
            params: list = [symbol.upper()]
            if instrument_type is not None:
                q += " AND type = ?"
                params.append(instrument_type.value)
            q += " ORDER BY type, expiry_date, strike_price LIMIT 1"
            row = c.execute(q, params).fetchone()
        return _row_to_instrument(row) if row else None

    def list_instruments(self) -> list[Instrument]:
        with self._reader(None) as c:
            rows = c.execute("SELECT * FROM instruments ORDER BY symbol, type").fetchall()
        return [_row_to_instrument(r) for r in rows]

    def search_instruments(
        self,
        query: str,
        instrument_type: InstrumentType | None = None,
        *,
        limit: int = 20,
    ) -> list[Instrument]:
        """Instruments whose symbol or name contains *query*, ignoring case."""
        q = "SELECT * FROM instruments WHERE (instr(lower(symbol), ?) > 0 OR instr(lower(name), ?) > 0)"
        needle = query.lower()
        params: list = [needle, needle]
        if instrument_type is not None:
            q += " AND type = ?"
            params.append(instrument_type.value)
        q += " ORDER BY symbol, type, expiry_date, strike_price LIMIT ?"
        params.append(limit)
        with self._reader(None) as c:
            rows = c.execute(q, params).fetchall()
        return [_row_to_instrument(r) for r in rows]

    def list_options(self, underlying_symbol: str, expiry_date: str | None = None) -> list[Instrument]:
        """OPTION instruments on *underlying_symbol*, by expiry then strike."""
        q = "SELECT * FROM instruments WHERE underlying_symbol = ? AND type = ?"
        params: list = [underlying_symbol.upper(), InstrumentType.OPTION.value]
        if expiry_date is not None:
            q += " AND expiry_date = ?"
            params.append(expiry_date)
        with self._reader(None) as c:
            rows = c.execute(q, params).fetchall()
        options = [_row_to_instrument(r) for r in rows]
        # strike is TEXT; sort as Decimal
        options.sort(key=lambda i: (i.expiry_date or "", i.strike_price if i.strike_price is not None else ZERO))
        return options

    # ---------- orders ----------

    def insert_order(self, order: Order) -> Order:
        with self.transaction() as c:
            self.get_account(order.account_id, c)
            self.get_instrument(order.instrument_id, c)
            c.execute(
                """INSERT INTO orders (id, account_id, instrument_id, side, type, quantity, limit_price,
                       stop_price, time_in_force, status, filled_quantity, average_fill_price,
                       placed_at, filled_at, cancelled_at, reject_reason)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    order.id,
                    order.account_id,
                    order.instrument_id,
                    order.side.value,
                    order.type.value,
                    _dec(order.quantity),
                    _dec(order.limit_price),
                    _dec(order.stop_price),
                    order.time_in_force,
                    order.status.value,
                    _dec(order.filled_quantity),
                    _dec(order.average_fill_price),
                    _ts(order.placed_at),
                    _ts(order.filled_at),
                    _ts(order.cancelled_at),
                    order.reject_reason,
                ),
            )
        return order

    def get_order(self, order_id: str, conn: sqlite3.Connection | None = None) -> Order:
        with self._reader(conn) as c:
            row = c.execute("SELECT * FROM orders WHERE id = ?", (order_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Order not found: {order_id}")
        return _row_to_order(row)

    def list_orders(
        self,
        account_id: str | None = None,
        status: OrderStatus | None = None,
        *,
        limit: int | None = None,
    ) -> list[Order]:
        """Orders newest first, optionally filtered by account and status."""
        q = "SELECT * FROM orders WHERE 1 = 1"
        params: list = []
        if account_id is not None:
            q += " AND account_id = ?"
            params.append(account_id)
        if status is not None:
            q += " AND status = ?"
            params.append(status.value)
        q += " ORDER BY placed_at DESC"
        if limit is not None:
            q += " LIMIT ?"
            params.append(limit)
        with self._reader(None) as c:
            rows = c.execute(q, params).fetchall()
        return [_row_to_order(r) for r in rows]

    def count_working_orders(self, account_id: str) -> int:
        placeholders = ", ".join("?" for _ in WORKING_STATUSES)
        with self._reader(None) as c:
            row = c.execute(
                f"SELECT COUNT(*) FROM orders WHERE account_id = ? AND status IN ({placeholders})",
                (account_id, *sorted(s.value for s in WORKING_STATUSES)),
            ).fetchone()
        return row[0] if row else 0

    def list_fills(self, account_id: str | None = None, limit: int = 100) -> list[Order]:
        """Filled orders, most recent fill first."""
        q = "SELECT * FROM orders WHERE status = ?"
        params: list = [OrderStatus.FILLED.value]
        if account_id is not None:
            q += " AND account_id = ?"
            params.append(account_id)
        q += " ORDER BY filled_at DESC LIMIT ?"
        params.append(limit)
        with self._reader(None) as c:
            rows = c.execute(q, params).fetchall()
        return [_row_to_order(r) for r in rows]

    def mark_filled(
        self,
        conn: sqlite3.Connection,
        order_id: str,
        filled_quantity: Decimal,
        fill_price: Decimal,
        filled_at: datetime,
    ) -> None:
        """PENDING -> FILLED. Guarded on status so a concurrent fill cannot apply twice."""
        cur = conn.execute(
            """UPDATE orders SET status = ?, filled_quantity = ?, average_fill_price = ?, filled_at = ?
               WHERE id = ? AND status = ?""",
            (
                OrderStatus.FILLED.value,
                _dec(filled_quantity),
                _dec(fill_price),
                _ts(filled_at),
                order_id,
                OrderStatus.PENDING.value,
            ),
        )
        if cur.rowcount != 1:
            raise InvalidStateError(f"Order {order_id} is no longer PENDING")

    def cancel_order(self, order_id: str, *, cancelled_at: datetime) -> Order:
        with self.transaction() as c:
            order = self.get_order(order_id, c)
            check_cancellable(order)
            c.execute(
                "UPDATE orders SET status = ?, cancelled_at = ? WHERE id = ?",
                (OrderStatus.CANCELLED.value, _ts(cancelled_at), order_id),
            )
            return self.get_order(order_id, c)

    def reject_order(self, order_id: str, reason: str) -> Order:
        """PENDING -> REJECTED with a reason. No position or cash change."""
        with self.transaction() as c:
            order = self.get_order(order_id, c)
            check_rejectable(order)
            c.execute(
                "UPDATE orders SET status = ?, reject_reason = ? WHERE id = ?",
                (OrderStatus.REJECTED.value, reason, order_id),
            )
            return self.get_order(order_id, c)

    # ---------- positions ----------

    def get_position(
        self,
        account_id: str,
        instrument_id: str,
        conn: sqlite3.Connection | None = None,
    ) -> Position | None:
        with self._reader(conn) as c:
            row = c.execute(
                "SELECT * FROM positions WHERE account_id = ? AND instrument_id = ?",
                (account_id, instrument_id),
            ).fetchone()
        if not row or Decimal(row["quantity"]) == ZERO:
            return None
        return _row_to_position(row)

    def list_positions(self, account_id: str, conn: sqlite3.Connection | None = None) -> list[Position]:
        with self._reader(conn) as c:
            rows = c.execute(
                "SELECT * FROM positions WHERE account_id = ? ORDER BY updated_at", (account_id,)
            ).fetchall()
        return [_row_to_position(r) for r in rows]

    def save_position(
        self,
        conn: sqlite3.Connection,
        account_id: str,
        instrument_id: str,
        result: PositionResult,
        updated_at: datetime,
    ) -> None:
        """Persist a Position Ledger result: upsert, delete on CLOSED, nothing on NO_POSITION."""
        if result.kind == PositionResultKind.NO_POSITION:
            return
        if result.kind == PositionResultKind.CLOSED:
            conn.execute(
                "DELETE FROM positions WHERE account_id = ? AND instrument_id = ?",
                (account_id, instrument_id),
            )
            return
        pos = result.position
        conn.execute(
            """INSERT INTO positions (account_id, instrument_id, quantity, average_price, realized_pnl,
                   unrealized_pnl, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT (account_id, instrument_id) DO UPDATE SET
                   quantity = excluded.quantity,
                   average_price = excluded.average_price,
                   realized_pnl = excluded.realized_pnl,
                   unrealized_pnl = excluded.unrealized_pnl,
                   updated_at = excluded.updated_at""",
            (
                account_id,
                instrument_id,
                _dec(pos.quantity),
                _dec(pos.average_price),
                _dec(pos.realized_pnl),
                _dec(pos.unrealized_pnl),
                _ts(updated_at),
            ),
        )

    def update_unrealized(
        self,
        conn: sqlite3.Connection,
        account_id: str,
        instrument_id: str,
        unrealized_pnl: Decimal,
    ) -> None:
        conn.execute(
            "UPDATE positions SET unrealized_pnl = ? WHERE account_id = ? AND instrument_id = ?",
            (_dec(unrealized_pnl), account_id, instrument_id),
        )

    # ---------- P&L snapshots ----------

    def insert_snapshot(self, conn: sqlite3.Connection, snapshot: PnlSnapshot) -> None:
        conn.execute(
            """INSERT INTO pnl_snapshots (account_id, taken_at, cash, market_value, equity, realized_pnl,
                   unrealized_pnl)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                snapshot.account_id,
                _ts(snapshot.taken_at),
                _dec(snapshot.cash),
                _dec(snapshot.market_value),
                _dec(snapshot.equity),
                _dec(snapshot.realized_pnl),
                _dec(snapshot.unrealized_pnl),
            ),
        )

    def list_snapshots(self, account_id: str, since: datetime | None = None) -> list[PnlSnapshot]:
        """Snapshots for *account_id* taken at or after *since*, oldest first."""
        q = "SELECT * FROM pnl_snapshots WHERE account_id = ?"
        params: list = [account_id]
        if since is not None:
            q += " AND taken_at >= ?"
            params.append(_ts(since))
        q += " ORDER BY taken_at, id"
        with self._reader(None) as c:
            rows = c.execute(q, params).fetchall()
        return [_row_to_snapshot(r) for r in rows]
