"""Pytest fixtures: a temp ledger store, a static quote source, a paper account and instruments."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from execution import LedgerStore, OrderExecutor, open_account
from market_data import StaticQuoteSource
from trading_core.contracts import Account, AccountType, Instrument, InstrumentType, OrderRequest


def _ts(year: int, month: int, day: int, hour: int = 14, minute: int = 30) -> datetime:
    return datetime(year, month, day, hour, minute, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic clock: each call advances one second."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or _ts(2024, 3, 1)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store(tmp_path: Path) -> LedgerStore:
    return LedgerStore(tmp_path / "ledger.db")


@pytest.fixture
def quotes() -> StaticQuoteSource:
    src = StaticQuoteSource()
    src.set_quote("AAPL", "100.00", "100.10", "100.05")
    src.set_quote("MSFT", "415.00", "415.20")
    return src


@pytest.fixture
def events() -> list[tuple[str, dict]]:
    return []


@pytest.fixture
def executor(store: LedgerStore, quotes: StaticQuoteSource, clock: StepClock, events: list) -> OrderExecutor:
    return OrderExecutor(store, quotes, clock=clock, on_event=lambda t, p: events.append((t, p)))


@pytest.fixture
def account(store: LedgerStore) -> Account:
    """PAPER account with 10,000 cash."""
    return open_account(store, "user-1", AccountType.PAPER, initial_balance=Decimal("10000"), now=_ts(2024, 3, 1, 9))


@pytest.fixture
def aapl(store: LedgerStore) -> Instrument:
    return store.upsert_instrument("AAPL", InstrumentType.STOCK, name="Apple Inc.")


@pytest.fixture
def msft(store: LedgerStore) -> Instrument:
    return store.upsert_instrument("MSFT", InstrumentType.STOCK)


@pytest.fixture
def place(executor: OrderExecutor, account: Account, aapl: Instrument):
    """Place an AAPL order on the paper account; keyword overrides for any request field."""

    def _place(side: str = "BUY", quantity: str = "10", order_type: str = "MARKET", **kw):
        fields = {"account_id": account.id, "instrument_id": aapl.id, **kw}
        return executor.place_order(OrderRequest(side=side, type=order_type, quantity=quantity, **fields))

    return _place
