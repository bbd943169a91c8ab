"""Tests for the SQLite ledger store. Decimal round-trip; restart-safe."""

import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from execution import LedgerStore, OrderExecutor, open_account, options_chain, search_instruments
from trading_core.contracts import (
    InstrumentType,
    OrderRequest,
    OrderStatus,
    Position,
    PositionResult,
    PositionResultKind,
)
from trading_core.errors import InvalidStateError, LockTimeoutError, NotFoundError

_NOW = datetime(2024, 3, 1, 15, 0, tzinfo=timezone.utc)


def test_reopen_preserves_state(tmp_path: Path, quotes) -> None:
    path = tmp_path / "state.db"
    store = LedgerStore(path)
    acct = open_account(store, "u1", initial_balance=Decimal("5000.25"))
    inst = store.upsert_instrument("aapl", InstrumentType.STOCK)
    ex = OrderExecutor(store, quotes)
    order = ex.place_order(OrderRequest(acct.id, inst.id, side="BUY", type="MARKET", quantity="0.5"))
    ex.execute(order.id)

    reopened = LedgerStore(path)
    assert reopened.get_account(acct.id).cash == Decimal("5000.25") - Decimal("100.10") * Decimal("0.5")
    pos = reopened.get_position(acct.id, inst.id)
    assert pos.quantity == Decimal("0.5")
    assert reopened.get_order(order.id).status == OrderStatus.FILLED
    assert reopened.find_instrument("AAPL").id == inst.id


class TestInstruments:
    def test_upsert_is_idempotent_on_identity(self, store: LedgerStore) -> None:
        a = store.upsert_instrument("SPY", InstrumentType.ETF, name="SPDR")
        b = store.upsert_instrument("spy", InstrumentType.ETF, name="SPDR S&P 500")
        assert a.id == b.id
        assert b.name == "SPDR S&P 500"
        assert len(store.list_instruments()) == 1

    def test_options_distinct_by_strike_and_expiry(self, store: LedgerStore) -> None:
        c1 = store.upsert_instrument(
            "AAPL240621C00190000", InstrumentType.OPTION,
            underlying_symbol="AAPL", strike_price=Decimal("190"), expiry_date="2024-06-21", option_type="CALL",
        )
        c2 = store.upsert_instrument(
            "AAPL240621C00190000", InstrumentType.OPTION,
            underlying_symbol="AAPL", strike_price=Decimal("195"), expiry_date="2024-06-21", option_type="CALL",
        )
        assert c1.id != c2.id
        assert store.get_instrument(c1.id).strike_price == Decimal("190")

    def test_find_by_type(self, store: LedgerStore) -> None:
        store.upsert_instrument("BTCUSD", InstrumentType.CRYPTO)
        assert store.find_instrument("BTCUSD", InstrumentType.STOCK) is None
        assert store.find_instrument("btcusd").type == InstrumentType.CRYPTO

    def test_missing_instrument(self, store: LedgerStore) -> None:
        with pytest.raises(NotFoundError):
            store.get_instrument("nope")


class TestOrders:
    def test_list_newest_first_and_filter(self, place, executor: OrderExecutor, store: LedgerStore, account) -> None:
        first = place("BUY", "1")
        second = place("BUY", "2")
        executor.execute(first.id)
        ids = [o.id for o in store.list_orders(account.id)]
        assert ids == [second.id, first.id]
        pending = store.list_orders(account.id, OrderStatus.PENDING)
        assert [o.id for o in pending] == [second.id]
        assert store.count_working_orders(account.id) == 1
        assert [o.id for o in store.list_fills(account.id)] == [first.id]

    def test_mark_filled_guarded_on_status(self, place, store: LedgerStore) -> None:
        order = place("BUY", "1")
        with store.transaction() as conn:
            store.mark_filled(conn, order.id, Decimal("1"), Decimal("100"), _NOW)
        with pytest.raises(InvalidStateError):
            with store.transaction() as conn:
                store.mark_filled(conn, order.id, Decimal("1"), Decimal("100"), _NOW)

    def test_reject_requires_pending(self, place, store: LedgerStore) -> None:
        order = place("BUY", "1")
        rejected = store.reject_order(order.id, "manual")
        assert rejected.status == OrderStatus.REJECTED
        assert rejected.reject_reason == "manual"
        with pytest.raises(InvalidStateError):
            store.reject_order(order.id, "again")


class TestPositions:
    def test_save_create_update_close(self, store: LedgerStore, account, aapl) -> None:
        pos = Position(account.id, aapl.id, Decimal("3"), Decimal("10.5"))
        with store.transaction() as conn:
            store.save_position(conn, account.id, aapl.id, PositionResult(PositionResultKind.CREATED, pos), _NOW)
        assert store.get_position(account.id, aapl.id) == pos

        with store.transaction() as conn:
            store.save_position(conn, account.id, aapl.id, PositionResult(PositionResultKind.NO_POSITION, None), _NOW)
        assert store.get_position(account.id, aapl.id) == pos

        with store.transaction() as conn:
            store.save_position(conn, account.id, aapl.id, PositionResult(PositionResultKind.CLOSED, None), _NOW)
        assert store.get_position(account.id, aapl.id) is None
        assert store.list_positions(account.id) == []

    def test_transaction_rolls_back(self, store: LedgerStore, account, aapl) -> None:
        pos = Position(account.id, aapl.id, Decimal("3"), Decimal("10.5"))
        with pytest.raises(RuntimeError):
            with store.transaction() as conn:
                store.save_position(conn, account.id, aapl.id, PositionResult(PositionResultKind.CREATED, pos), _NOW)
                store.update_account_balances(conn, account.id, Decimal("1"), Decimal("1"))
                raise RuntimeError("abort")
        assert store.get_position(account.id, aapl.id) is None
        assert store.get_account(account.id).cash == Decimal("10000")


def test_list_accounts_by_user(store: LedgerStore) -> None:
    a = open_account(store, "alice")
    open_account(store, "bob")
    assert [x.id for x in store.list_accounts("alice")] == [a.id]
    assert len(store.list_accounts()) == 2


def test_busy_database_raises_lock_timeout(store: LedgerStore, account) -> None:
    impatient = LedgerStore(store.path, busy_timeout=0.05)
    other = sqlite3.connect(str(store.path), isolation_level=None)
    try:
        other.execute("BEGIN IMMEDIATE")
        with pytest.raises(LockTimeoutError):
            with impatient.transaction():
                pass
        assert impatient.get_account(account.id).id == account.id
    finally:
        other.execute("ROLLBACK")
        other.close()
    with impatient.transaction():
        pass


def _option(store: LedgerStore, underlying: str, strike: str, expiry: str, kind: str):
    symbol = f"{underlying}{expiry[2:4]}{expiry[5:7]}{expiry[8:10]}{kind[0]}{int(Decimal(strike) * 1000):08d}"
    return store.upsert_instrument(
        symbol, InstrumentType.OPTION,
        underlying_symbol=underlying, strike_price=Decimal(strike), expiry_date=expiry, option_type=kind,
    )


class TestCatalog:
    def test_search_symbol_or_name_ignoring_case(self, store: LedgerStore) -> None:
        store.upsert_instrument("AAPL", InstrumentType.STOCK, name="Apple Inc.")
        store.upsert_instrument("SPY", InstrumentType.ETF, name="SPDR S&P 500")
        store.upsert_instrument("MSFT", InstrumentType.STOCK, name="Microsoft")

        assert [i.symbol for i in search_instruments(store, "apple")] == ["AAPL"]
        assert [i.symbol for i in search_instruments(store, "aap")] == ["AAPL"]
        assert [i.symbol for i in search_instruments(store, "s")] == ["MSFT", "SPY"]
        assert [i.symbol for i in search_instruments(store, "s", InstrumentType.ETF)] == ["SPY"]
        assert search_instruments(store, "%") == []
        assert search_instruments(store, "  ") == []

    def test_search_returns_at_most_twenty(self, store: LedgerStore) -> None:
        for n in range(25):
            store.upsert_instrument(f"TK{n:02d}", InstrumentType.STOCK)
        found = search_instruments(store, "tk")
        assert len(found) == 20
        assert found[0].symbol == "TK00"

    def test_options_chain_grouped_by_expiry(self, store: LedgerStore) -> None:
        store.upsert_instrument("AAPL", InstrumentType.STOCK)
        _option(store, "AAPL", "195", "2024-06-21", "CALL")
        _option(store, "AAPL", "90", "2024-06-21", "PUT")
        _option(store, "AAPL", "190", "2024-06-21", "CALL")
        _option(store, "AAPL", "200", "2024-05-17", "CALL")
        _option(store, "MSFT", "400", "2024-06-21", "CALL")

        chain = options_chain(store, "aapl")
        assert list(chain) == ["2024-05-17", "2024-06-21"]
        june = chain["2024-06-21"]
        assert [o.strike_price for o in june.calls] == [Decimal("190"), Decimal("195")]
        assert [o.strike_price for o in june.puts] == [Decimal("90")]
        assert chain["2024-05-17"].puts == []

        only_may = options_chain(store, "AAPL", "2024-05-17")
        assert list(only_may) == ["2024-05-17"]
        assert options_chain(store, "TSLA") == {}
