"""
Order executor: place PENDING orders and fill them against a quote.

execute() runs the fill path as one unit of work:

    status/type/account checks -> quote -> fill price        (no lock held)
    lock(account) -> lock(account, instrument) -> BEGIN IMMEDIATE
        re-check order is PENDING, SELL <= position
        Position Ledger -> Account Cash Ledger -> order FILLED
    COMMIT (or ROLLBACK on any exception)

Nothing is written unless all three rows are written. A second execute() on
the same order sees FILLED and raises InvalidStateError.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from execution.locks import KeyedLocks, account_key, position_key
from execution.store import LedgerStore
from market_data.quotes import QuoteSource
from trading_core import fill_pricer
from trading_core.cash_ledger import apply_cash, fill_cost
from trading_core.contracts import (
    ExecutionReport,
    Order,
    OrderRequest,
    OrderStatus,
    Quote,
)
from trading_core.errors import (
    ExecutionError,
    InvalidStateError,
    LockTimeoutError,
    QuoteUnavailableError,
)
from trading_core.order_rules import check_executable, check_sell_quantity, validate_request
from trading_core.position_ledger import apply_fill

logger = logging.getLogger("ptrade.execution")

EventCallback = Callable[[str, dict], None]

# Reported by try_execute() but never written to the order as REJECTED.
_TRANSIENT_ERRORS = (QuoteUnavailableError, InvalidStateError, LockTimeoutError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderExecutor:
    """
    Paper executor over a LedgerStore and a QuoteSource.

    Safe to call from several threads: fills against the same account are
    serialized by KeyedLocks, and SQLite's write lock covers other processes.
    """

    def __init__(
        self,
        store: LedgerStore,
        quotes: QuoteSource,
        *,
        clock: Callable[[], datetime] = _utcnow,
        locks: Optional[KeyedLocks] = None,
        reject_on_error: bool = False,
        on_event: Optional[EventCallback] = None,
    ) -> None:
        self._store = store
        self._quotes = quotes
        self._clock = clock
        self._locks = locks if locks is not None else KeyedLocks()
        self._reject_on_error = reject_on_error
        self._on_event = on_event

    def _emit(self, event_type: str, payload: dict[str, Any]) -> None:
        if self._on_event is not None:
            self._on_event(event_type, payload)

    # ---------- order entry ----------

    def place_order(self, request: OrderRequest) -> Order:
        """Validate and store a new PENDING order. Does not execute it."""
        valid = validate_request(request)
        order = Order(
            id=str(uuid.uuid4()),
            account_id=request.account_id,
            instrument_id=request.instrument_id,
            side=valid.side,
            type=valid.type,
            quantity=valid.quantity,
            status=OrderStatus.PENDING,
            placed_at=self._clock(),
            limit_price=valid.limit_price,
            stop_price=valid.stop_price,
            time_in_force=valid.time_in_force,
        )
        self._store.insert_order(order)
        logger.info(
            "Placed order %s: %s %s %s on account %s",
            order.id, order.side.value, order.quantity, order.type.value, order.account_id,
        )
        self._emit(
            "order_placed",
            {
                "order_id": order.id,
                "account_id": order.account_id,
                "instrument_id": order.instrument_id,
                "side": order.side.value,
                "type": order.type.value,
                "qty": order.quantity,
                "limit_price": order.limit_price,
            },
        )
        return order

    def cancel(self, order_id: str) -> Order:
        order = self._store.cancel_order(order_id, cancelled_at=self._clock())
        logger.info("Cancelled order %s", order_id)
        self._emit("cancellation", {"order_id": order.id, "account_id": order.account_id})
        return order

    def reject(self, order_id: str, reason: str) -> Order:
        """Explicit PENDING -> REJECTED. Leaves position and cash untouched."""
        order = self._store.reject_order(order_id, reason)
        logger.info("Rejected order %s: %s", order_id, reason)
        self._emit("rejection", {"order_id": order.id, "reason": reason, "persisted": True})
        return order

    # ---------- fill path ----------

    def _resolve_quote(self, symbol: str) -> Quote:
        try:
            return self._quotes.get_quote(symbol)
        except QuoteUnavailableError:
            raise
        except Exception as exc:
            raise QuoteUnavailableError(f"Quote source failed for {symbol}: {exc}") from exc

    def execute(self, order_id: str) -> ExecutionReport:
        """Fill *order_id* fully at the Fill Pricer's price, or raise and change nothing.

        Raises
        ------
        InvalidStateError
            The order is not PENDING (including a second call on a filled order).
        UnsupportedOrderTypeError
            STOP or STOP_LIMIT.
        UnsupportedAccountTypeError
            LIVE account.
        QuoteUnavailableError
            The quote source failed.
        InsufficientPositionError
            SELL larger than the current position.
        LockTimeoutError
            The account lock or the database write lock was not free in time.
        NotFoundError
            Unknown order, account or instrument.
        """
        order = self._store.get_order(order_id)
        account = self._store.get_account(order.account_id)
        check_executable(order, account)

        instrument = self._store.get_instrument(order.instrument_id)
        quote = self._resolve_quote(instrument.symbol)
        fill_price = fill_pricer.price(order, quote)

        with self._locks.hold(account_key(order.account_id), position_key(order.account_id, order.instrument_id)):
            with self._store.transaction() as conn:
                order = self._store.get_order(order_id, conn)
                account = self._store.get_account(order.account_id, conn)
                check_executable(order, account)

                position = self._store.get_position(order.account_id, order.instrument_id, conn)
                check_sell_quantity(order, position)

                pos_result = apply_fill(
                    position,
                    order.side,
                    order.quantity,
                    fill_price,
                    account_id=order.account_id,
                    instrument_id=order.instrument_id,
                )
                cash = apply_cash(account, order.side, fill_price, order.quantity)
                filled_at = self._clock()

                self._store.save_position(conn, order.account_id, order.instrument_id, pos_result, filled_at)
                self._store.update_account_balances(conn, account.id, cash.new_cash, cash.new_equity)
                self._store.mark_filled(conn, order.id, order.quantity, fill_price, filled_at)

        cost = fill_cost(fill_price, order.quantity)
        logger.info(
            "Filled order %s: %s %s %s @ %s (cost %s, position %s)",
            order.id, order.side.value, order.quantity, instrument.symbol,
            fill_price, cost, pos_result.kind.value,
        )
        self._emit(
            "fill",
            {
                "order_id": order.id,
                "account_id": order.account_id,
                "symbol": instrument.symbol,
                "side": order.side.value,
                "qty": order.quantity,
                "price": fill_price,
                "cost": cost,
                "realized_pnl": pos_result.realized_pnl_delta,
                "position": pos_result.kind.value,
                "cash": cash.new_cash,
            },
        )
        return ExecutionReport(
            order_id=order.id,
            status=OrderStatus.FILLED,
            fill_price=fill_price,
            cost=cost,
            realized_pnl=pos_result.realized_pnl_delta,
            position_result=pos_result.kind,
        )

    def try_execute(self, order_id: str) -> ExecutionReport:
        """execute(), with execution errors reported as a REJECTED report instead of raised.

        When the executor was built with ``reject_on_error=True`` the order is
        also moved to REJECTED in the store, except for the transient errors
        in _TRANSIENT_ERRORS, which are reported but leave the order as it was.
        """
        try:
            return self.execute(order_id)
        except ExecutionError as exc:
            logger.warning("Order %s not filled: %s (%s)", order_id, exc, exc.kind)
            persist = self._reject_on_error and not isinstance(exc, _TRANSIENT_ERRORS)
            if persist:
                self.reject(order_id, f"{exc.kind}: {exc}")
            else:
                self._emit("rejection", {"order_id": order_id, "reason": f"{exc.kind}: {exc}", "persisted": False})
            return ExecutionReport(
                order_id=order_id,
                status=OrderStatus.REJECTED,
                error=exc.kind,
                message=str(exc),
            )
