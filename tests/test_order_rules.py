"""Tests for order request validation and fill-path preconditions."""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from trading_core.contracts import (
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
from trading_core.order_rules import (
    check_cancellable,
    check_executable,
    check_sell_quantity,
    to_decimal,
    validate_request,
)


def _req(**kw) -> OrderRequest:
    fields = {"account_id": "a1", "instrument_id": "i1", "side": "buy", "type": "market", "quantity": "10"}
    fields.update(kw)
    return OrderRequest(**fields)


_ORDER = Order(
    id="o1",
    account_id="a1",
    instrument_id="i1",
    side=OrderSide.SELL,
    type=OrderType.MARKET,
    quantity=Decimal("5"),
    status=OrderStatus.PENDING,
    placed_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
)
_PAPER = Account("a1", "u1", AccountType.PAPER, "USD", Decimal("1000"), Decimal("1000"))


class TestValidateRequest:
    def test_normalizes_case_and_decimal(self) -> None:
        v = validate_request(_req(quantity=0.1, time_in_force="gtc"))
        assert v.side == OrderSide.BUY
        assert v.type == OrderType.MARKET
        assert v.quantity == Decimal("0.1")
        assert v.time_in_force == "GTC"

    @pytest.mark.parametrize("qty", ["0", "0.001", "-1", "abc"])
    def test_bad_quantity(self, qty: str) -> None:
        with pytest.raises(OrderValidationError):
            validate_request(_req(quantity=qty))

    def test_minimum_quantity_accepted(self) -> None:
        assert validate_request(_req(quantity="0.01")).quantity == Decimal("0.01")

    def test_unknown_side(self) -> None:
        with pytest.raises(OrderValidationError, match="side"):
            validate_request(_req(side="hold"))

    def test_limit_requires_limit_price(self) -> None:
        with pytest.raises(OrderValidationError, match="limit price"):
            validate_request(_req(type="LIMIT"))

    def test_market_rejects_limit_price(self) -> None:
        with pytest.raises(OrderValidationError):
            validate_request(_req(limit_price="100"))

    def test_stop_limit_requires_both(self) -> None:
        with pytest.raises(OrderValidationError, match="stop price"):
            validate_request(_req(type="STOP_LIMIT", limit_price="99"))
        v = validate_request(_req(type="STOP_LIMIT", limit_price="99", stop_price="98"))
        assert v.stop_price == Decimal("98")

    def test_negative_price(self) -> None:
        with pytest.raises(OrderValidationError, match=">= 0"):
            validate_request(_req(type="LIMIT", limit_price="-1"))


class TestPreconditions:
    def test_pending_market_paper_passes(self) -> None:
        check_executable(_ORDER, _PAPER)

    def test_status_checked_first(self) -> None:
        filled_stop = replace(_ORDER, status=OrderStatus.FILLED, type=OrderType.STOP)
        with pytest.raises(InvalidStateError):
            check_executable(filled_stop, replace(_PAPER, type=AccountType.LIVE))

    def test_type_checked_before_account(self) -> None:
        with pytest.raises(UnsupportedOrderTypeError):
            check_executable(replace(_ORDER, type=OrderType.STOP), replace(_PAPER, type=AccountType.LIVE))

    def test_live_account(self) -> None:
        with pytest.raises(UnsupportedAccountTypeError):
            check_executable(_ORDER, replace(_PAPER, type=AccountType.LIVE))

    def test_sell_quantity(self) -> None:
        held = Position("a1", "i1", Decimal("5"), Decimal("100"))
        check_sell_quantity(_ORDER, held)
        with pytest.raises(InsufficientPositionError):
            check_sell_quantity(_ORDER, replace(held, quantity=Decimal("4.99")))
        with pytest.raises(InsufficientPositionError):
            check_sell_quantity(_ORDER, None)

    def test_buy_skips_position_check(self) -> None:
        check_sell_quantity(replace(_ORDER, side=OrderSide.BUY), None)

    @pytest.mark.parametrize("status", [OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.REJECTED])
    def test_terminal_not_cancellable(self, status: OrderStatus) -> None:
        with pytest.raises(InvalidStateError):
            check_cancellable(replace(_ORDER, status=status))


def test_to_decimal_passthrough() -> None:
    d = Decimal("1.50")
    assert to_decimal(d, "x") is d
