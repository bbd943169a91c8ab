"""Tests for the Position Ledger: create, average up, reduce, close."""

from decimal import Decimal

import pytest

from trading_core.contracts import OrderSide, Position, PositionResultKind
from trading_core.errors import InsufficientPositionError
from trading_core.position_ledger import apply_fill, weighted_average


def _pos(qty: str, avg: str, realized: str = "0") -> Position:
    return Position("a1", "i1", Decimal(qty), Decimal(avg), realized_pnl=Decimal(realized))


class TestBuy:
    def test_first_buy_creates(self) -> None:
        r = apply_fill(None, OrderSide.BUY, Decimal("10"), Decimal("100.10"), account_id="a1", instrument_id="i1")
        assert r.kind == PositionResultKind.CREATED
        assert r.position.quantity == Decimal("10")
        assert r.position.average_price == Decimal("100.10")
        assert r.position.account_id == "a1"
        assert r.position.realized_pnl == 0
        assert r.realized_pnl_delta == 0

    def test_second_buy_weighted_average(self) -> None:
        r = apply_fill(_pos("10", "100.10"), OrderSide.BUY, Decimal("10"), Decimal("102.10"))
        assert r.kind == PositionResultKind.UPDATED
        assert r.position.quantity == Decimal("20")
        assert r.position.average_price == Decimal("101.10")
        assert r.realized_pnl_delta == 0

    def test_buy_keeps_realized(self) -> None:
        r = apply_fill(_pos("5", "100", realized="12.5"), OrderSide.BUY, Decimal("5"), Decimal("110"))
        assert r.position.realized_pnl == Decimal("12.5")
        assert r.position.average_price == Decimal("105")


class TestSell:
    def test_partial_sell_realizes_and_keeps_average(self) -> None:
        r = apply_fill(_pos("10", "100.10"), OrderSide.SELL, Decimal("4"), Decimal("105.00"))
        assert r.kind == PositionResultKind.UPDATED
        assert r.position.quantity == Decimal("6")
        assert r.position.average_price == Decimal("100.10")
        assert r.position.realized_pnl == Decimal("19.60")
        assert r.realized_pnl_delta == Decimal("19.60")

    def test_full_sell_closes(self) -> None:
        r = apply_fill(_pos("6", "100.10", realized="19.60"), OrderSide.SELL, Decimal("6"), Decimal("99.00"))
        assert r.kind == PositionResultKind.CLOSED
        assert r.position is None
        assert r.realized_pnl_delta == Decimal("-6.60")

    def test_sell_without_position(self) -> None:
        r = apply_fill(None, OrderSide.SELL, Decimal("1"), Decimal("100"))
        assert r.kind == PositionResultKind.NO_POSITION
        assert r.position is None

    def test_oversell_refused(self) -> None:
        with pytest.raises(InsufficientPositionError):
            apply_fill(_pos("5", "100"), OrderSide.SELL, Decimal("6"), Decimal("100"))


def test_zero_quantity_rejected() -> None:
    with pytest.raises(ValueError):
        apply_fill(None, OrderSide.BUY, Decimal("0"), Decimal("100"))


def test_weighted_average_fractional() -> None:
    assert weighted_average(Decimal("0.5"), Decimal("200"), Decimal("1.5"), Decimal("100")) == Decimal("125")
