"""
CLI entry point: ptrade account | instrument | order | positions | fills | revalue | performance | quote | refresh | health.

Every command loads config from --config (default config.yaml), prints
human-readable output, and logs fills, rejections and cancellations to the journal.
"""

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import click
from dotenv import load_dotenv

from config import AppConfig, ConfigError, load_config

load_dotenv()

logger = logging.getLogger("ptrade")


def _setup_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s  %(message)s",
        stream=sys.stderr,
    )


@dataclass
class Runtime:
    """Objects shared by every command for one invocation."""

    cfg: AppConfig
    store: Any
    quotes: Any
    executor: Any
    events: Any
    journal: Any
    locks: Any


def _build_quote_source(cfg: AppConfig):
    from market_data import CachedQuoteSource, StaticQuoteSource, get_alpaca_quote_source

    if cfg.quotes.source == "alpaca":
        source = get_alpaca_quote_source(cfg.quotes.api_key, cfg.quotes.api_secret, feed=cfg.quotes.feed)
    else:
        source = StaticQuoteSource()
        for symbol, q in cfg.quotes.symbols.items():
            source.set_quote(symbol, q.bid, q.ask, q.last)
    return CachedQuoteSource(source, ttl_seconds=cfg.quotes.cache_ttl_seconds)


def _build_runtime(cfg: AppConfig) -> Runtime:
    from cli.structured_log import StructuredEventLogger
    from execution import KeyedLocks, LedgerStore, OrderExecutor
    from journal import JournalWriter

    store = LedgerStore(cfg.database.path, busy_timeout=cfg.database.busy_timeout_seconds)
    journal = JournalWriter(cfg.journal.path, echo_stdout=cfg.journal.echo_stdout)
    events = StructuredEventLogger(
        enabled=cfg.alerting.structured_logs,
        webhook_url=cfg.alerting.webhook_url,
    )
    quotes = _build_quote_source(cfg)
    locks = KeyedLocks(timeout=cfg.execution.lock_timeout_seconds)

    def on_event(event_type: str, payload: dict) -> None:
        if event_type == "fill":
            rest = {k: v for k, v in payload.items() if k not in ("order_id", "symbol", "side", "qty", "price")}
            journal.fill(payload["order_id"], payload["symbol"], payload["side"], payload["qty"], payload["price"], **rest)
            events.order_filled(
                payload["order_id"], payload["symbol"], payload["side"],
                payload["qty"], payload["price"], payload["cost"],
            )
        elif event_type == "rejection":
            journal.rejection(payload["order_id"], payload["reason"], persisted=payload["persisted"])
            events.order_rejected(payload["order_id"], payload["reason"])
        elif event_type == "cancellation":
            journal.cancellation(payload["order_id"], account_id=payload["account_id"])
            events.order_cancelled(payload["order_id"])
        elif event_type == "order_placed":
            events.order_placed(payload["order_id"], payload["side"], payload["type"], payload["qty"])

    executor = OrderExecutor(
        store,
        quotes,
        locks=locks,
        reject_on_error=cfg.execution.reject_on_error,
        on_event=on_event,
    )
    return Runtime(cfg=cfg, store=store, quotes=quotes, executor=executor, events=events, journal=journal, locks=locks)


def _runtime(ctx: click.Context) -> Runtime:
    rt = ctx.obj.get("runtime")
    if rt is None:
        try:
            cfg = load_config(ctx.obj["config_path"])
        except (FileNotFoundError, ConfigError) as exc:
            raise click.ClickException(str(exc)) from exc
        rt = _build_runtime(cfg)
        ctx.obj["runtime"] = rt
    return rt


@contextmanager
def _domain_errors(rt: Runtime):
    """Turn expected domain failures into a one-line CLI error (exit code 1)."""
    from trading_core.errors import ExecutionError, NotFoundError, OrderValidationError

    try:
        yield
    except (ExecutionError, NotFoundError, OrderValidationError) as exc:
        logger.warning("Command failed: %s", exc)
        rt.events.error(message=str(exc), detail=getattr(exc, "kind", type(exc).__name__))
        raise click.ClickException(str(exc)) from exc


def _symbols(rt: Runtime) -> dict[str, str]:
    return {i.id: i.symbol for i in rt.store.list_instruments()}


@click.group()
@click.option("--config", "config_path", default="config.yaml", help="Path to config file.")
@click.pass_context
def cli(ctx: click.Context, config_path: str) -> None:
    """ptrade: paper-trading execution core. Immediate full fills against a quote source."""
    _setup_logging()
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------- ptrade account ----------


@cli.group()
def account() -> None:
    """Open and inspect trading accounts."""


@account.command("open")
@click.option("--user", "user_id", required=True, help="Owning user id.")
@click.option("--type", "account_type", type=click.Choice(["PAPER", "LIVE"], case_sensitive=False), default="PAPER")
@click.option("--currency", default=None, help="Account currency (default from config).")
@click.pass_context
def account_open(ctx: click.Context, user_id: str, account_type: str, currency: str | None) -> None:
    """Open an account. PAPER accounts start with the configured initial balance."""
    rt = _runtime(ctx)
    from execution import open_account
    from cli.output import format_account
    from trading_core.contracts import AccountType

    acct = open_account(
        rt.store,
        user_id,
        AccountType(account_type.upper()),
        currency or rt.cfg.accounts.currency,
        initial_balance=rt.cfg.accounts.initial_balance,
    )
    click.echo(format_account(acct))


@account.command("list")
@click.option("--user", "user_id", default=None, help="Only accounts owned by this user.")
@click.pass_context
def account_list(ctx: click.Context, user_id: str | None) -> None:
    """List accounts."""
    rt = _runtime(ctx)
    from cli.output import format_account

    accounts = rt.store.list_accounts(user_id)
    if not accounts:
        click.echo("No accounts. Run 'ptrade account open --user <id>' first.")
        return
    for acct in accounts:
        click.echo(format_account(acct))


@account.command("summary")
@click.argument("account_id")
@click.pass_context
def account_summary_cmd(ctx: click.Context, account_id: str) -> None:
    """Show cash, equity, P&L totals and positions."""
    rt = _runtime(ctx)
    from execution import account_summary
    from cli.output import format_account_summary

    with _domain_errors(rt):
        summary = account_summary(rt.store, account_id)
    click.echo(format_account_summary(summary, _symbols(rt)))


# ---------- ptrade instrument ----------


@cli.group()
def instrument() -> None:
    """Manage the instrument catalog."""


@instrument.command("add")
@click.argument("symbol")
@click.option("--type", "instrument_type", default="STOCK",
              type=click.Choice(["STOCK", "ETF", "OPTION", "FUTURE", "CRYPTO", "FOREX"], case_sensitive=False))
@click.option("--name", default="", help="Display name.")
@click.option("--underlying", default=None, help="Underlying symbol (options).")
@click.option("--strike", default=None, help="Strike price (options).")
@click.option("--expiry", default=None, help="Expiry date YYYY-MM-DD (options).")
@click.option("--option-type", default=None, type=click.Choice(["CALL", "PUT"], case_sensitive=False))
@click.pass_context
def instrument_add(
    ctx: click.Context,
    symbol: str,
    instrument_type: str,
    name: str,
    underlying: str | None,
    strike: str | None,
    expiry: str | None,
    option_type: str | None,
) -> None:
    """Add or update an instrument."""
    rt = _runtime(ctx)
    from cli.output import format_instrument
    from trading_core.contracts import InstrumentType

    inst = rt.store.upsert_instrument(
        symbol,
        InstrumentType(instrument_type.upper()),
        name=name,
        underlying_symbol=underlying.upper() if underlying else None,
        strike_price=Decimal(strike) if strike is not None else None,
        expiry_date=expiry,
        option_type=option_type.upper() if option_type else None,
    )
    click.echo(format_instrument(inst))


@instrument.command("list")
@click.pass_context
def instrument_list(ctx: click.Context) -> None:
    """List instruments."""
    rt = _runtime(ctx)
    from cli.output import format_instrument

    instruments = rt.store.list_instruments()
    if not instruments:
        click.echo("No instruments. Run 'ptrade instrument add <SYMBOL>' first.")
        return
    for inst in instruments:
        click.echo(format_instrument(inst))


@instrument.command("search")
@click.argument("query")
@click.option("--type", "instrument_type", default=None,
              type=click.Choice(["STOCK", "ETF", "OPTION", "FUTURE", "CRYPTO", "FOREX"], case_sensitive=False))
@click.pass_context
def instrument_search(ctx: click.Context, query: str, instrument_type: str | None) -> None:
    """Find instruments whose symbol or name contains QUERY (first 20)."""
    rt = _runtime(ctx)
    from execution import search_instruments
    from cli.output import format_instrument
    from trading_core.contracts import InstrumentType

    found = search_instruments(rt.store, query, InstrumentType(instrument_type.upper()) if instrument_type else None)
    if not found:
        click.echo(f"No instruments match '{query}'.")
        return
    for inst in found:
        click.echo(format_instrument(inst))


@instrument.command("chain")
@click.argument("underlying")
@click.option("--expiry", default=None, help="Only this expiry date (YYYY-MM-DD).")
@click.pass_context
def instrument_chain(ctx: click.Context, underlying: str, expiry: str | None) -> None:
    """Show the options chain for UNDERLYING, grouped by expiry."""
    rt = _runtime(ctx)
    from execution import options_chain
    from cli.output import format_options_chain

    click.echo(format_options_chain(underlying, options_chain(rt.store, underlying, expiry)))


# ---------- ptrade order ----------


@cli.group()
def order() -> None:
    """Place, execute, cancel and list orders."""


@order.command("place")
@click.argument("account_id")
@click.argument("symbol")
@click.argument("side", type=click.Choice(["BUY", "SELL"], case_sensitive=False))
@click.argument("quantity")
@click.option("--type", "order_type", default="MARKET",
              type=click.Choice(["MARKET", "LIMIT", "STOP", "STOP_LIMIT"], case_sensitive=False))
@click.option("--limit", "limit_price", default=None, help="Limit price (LIMIT, STOP_LIMIT).")
@click.option("--stop", "stop_price", default=None, help="Stop price (STOP, STOP_LIMIT).")
@click.option("--tif", "time_in_force", default="DAY", help="Time in force (stored only).")
@click.option("--no-execute", is_flag=True, default=False, help="Leave the order PENDING.")
@click.pass_context
def order_place(
    ctx: click.Context,
    account_id: str,
    symbol: str,
    side: str,
    quantity: str,
    order_type: str,
    limit_price: str | None,
    stop_price: str | None,
    time_in_force: str,
    no_execute: bool,
) -> None:
    """Place an order and fill it immediately against the current quote."""
    rt = _runtime(ctx)
    from cli.output import format_execution_report, format_order
    from trading_core.contracts import OrderRequest

    inst = rt.store.find_instrument(symbol)
    if inst is None:
        raise click.ClickException(f"Instrument not found: {symbol.upper()}. Run 'ptrade instrument add' first.")

    with _domain_errors(rt):
        placed = rt.executor.place_order(
            OrderRequest(
                account_id=account_id,
                instrument_id=inst.id,
                side=side,
                type=order_type,
                quantity=quantity,
                limit_price=limit_price,
                stop_price=stop_price,
                time_in_force=time_in_force,
            )
        )
    click.echo(format_order(placed, inst.symbol))
    if no_execute:
        return

    report = rt.executor.try_execute(placed.id)
    click.echo(format_execution_report(report, inst.symbol))


@order.command("execute")
@click.argument("order_id")
@click.pass_context
def order_execute(ctx: click.Context, order_id: str) -> None:
    """Fill a PENDING order. Fails without side effects on any precondition."""
    rt = _runtime(ctx)
    from cli.output import format_execution_report

    with _domain_errors(rt):
        report = rt.executor.execute(order_id)
        symbol = rt.store.get_instrument(rt.store.get_order(order_id).instrument_id).symbol
    click.echo(format_execution_report(report, symbol))


@order.command("cancel")
@click.argument("order_id")
@click.pass_context
def order_cancel(ctx: click.Context, order_id: str) -> None:
    """Cancel a PENDING or OPEN order."""
    rt = _runtime(ctx)
    from cli.output import format_order

    with _domain_errors(rt):
        cancelled = rt.executor.cancel(order_id)
    click.echo(format_order(cancelled))


@order.command("list")
@click.argument("account_id")
@click.option("--status", default=None,
              type=click.Choice(["PENDING", "OPEN", "PARTIALLY_FILLED", "FILLED", "CANCELLED", "REJECTED", "EXPIRED"],
                                case_sensitive=False))
@click.option("--limit", default=50, help="Maximum number of orders to show.")
@click.pass_context
def order_list(ctx: click.Context, account_id: str, status: str | None, limit: int) -> None:
    """List orders for an account, newest first."""
    rt = _runtime(ctx)
    from cli.output import format_orders
    from trading_core.contracts import OrderStatus

    orders = rt.store.list_orders(account_id, OrderStatus(status.upper()) if status else None, limit=limit)
    click.echo(format_orders(orders, _symbols(rt)))


# ---------- ptrade positions / fills ----------


@cli.command()
@click.argument("account_id")
@click.pass_context
def positions(ctx: click.Context, account_id: str) -> None:
    """Show open positions for an account."""
    rt = _runtime(ctx)
    from cli.output import format_positions

    with _domain_errors(rt):
        rt.store.get_account(account_id)
    click.echo(format_positions(rt.store.list_positions(account_id), _symbols(rt)))


@cli.command()
@click.argument("account_id")
@click.option("--limit", default=10, help="Number of recent fills to show.")
@click.pass_context
def fills(ctx: click.Context, account_id: str, limit: int) -> None:
    """Show recent fills for an account."""
    rt = _runtime(ctx)
    symbols = _symbols(rt)
    recent = rt.store.list_fills(account_id, limit=limit)
    if not recent:
        click.echo("No fills yet.")
        return
    click.echo(f"Recent fills ({len(recent)}):")
    for o in recent:
        click.echo(
            f"  {o.side.value} {o.filled_quantity} {symbols.get(o.instrument_id, '?')} "
            f"@ {o.average_fill_price:.2f}  {o.filled_at.isoformat()}"
        )


# ---------- ptrade revalue ----------


@cli.command()
@click.argument("account_id")
@click.pass_context
def revalue(ctx: click.Context, account_id: str) -> None:
    """Mark positions to last price and recompute equity."""
    rt = _runtime(ctx)
    from execution import revalue_account
    from cli.output import format_revaluation

    with _domain_errors(rt):
        reval = revalue_account(rt.store, account_id, rt.quotes, locks=rt.locks)
    rt.journal.revaluation(reval.account_id, reval.equity, reval.market_value, unrealized_pnl=reval.unrealized_pnl)
    rt.events.account_revalued(reval.account_id, reval.equity)
    click.echo(format_revaluation(reval))


@cli.command("performance")
@click.argument("account_id")
@click.option("--days", default=30, type=click.IntRange(min=0), help="How many days of history to show.")
@click.pass_context
def performance_cmd(ctx: click.Context, account_id: str, days: int) -> None:
    """Show the equity history recorded by 'ptrade revalue'."""
    rt = _runtime(ctx)
    from execution import performance
    from cli.output import format_performance

    with _domain_errors(rt):
        snapshots = performance(rt.store, account_id, days)
    click.echo(format_performance(account_id, snapshots, days))


# ---------- ptrade quote / refresh ----------


@cli.command()
@click.argument("symbol")
@click.pass_context
def quote(ctx: click.Context, symbol: str) -> None:
    """Show the current quote for a symbol."""
    rt = _runtime(ctx)
    from cli.output import format_quote

    with _domain_errors(rt):
        q = rt.quotes.get_quote(symbol)
    click.echo(format_quote(q))


@cli.command()
@click.option("--passes", default=None, type=int, help="Stop after N refresh passes (default: run until Ctrl+C).")
@click.option("--symbol", "symbols", multiple=True, help="Symbols to refresh (default: all instruments).")
@click.pass_context
def refresh(ctx: click.Context, passes: int | None, symbols: tuple[str, ...]) -> None:
    """Keep the quote cache warm on a fixed interval."""
    rt = _runtime(ctx)
    from cli.output import format_quote
    from market_data import QuoteRefresher

    targets = list(symbols) or sorted({i.symbol for i in rt.store.list_instruments()})
    if not targets:
        click.echo("No symbols to refresh. Add instruments or pass --symbol.")
        return

    def on_refresh(fresh: dict) -> None:
        for q in fresh.values():
            click.echo(format_quote(q))
        rt.events.quotes_refreshed(sorted(fresh), failures=len(targets) - len(fresh))

    refresher = QuoteRefresher(
        rt.quotes,
        targets,
        interval_seconds=rt.cfg.quotes.refresh_interval_seconds,
        on_refresh=on_refresh,
    )
    done = refresher.run(stop_after=passes)
    click.echo(f"Refresh stopped after {done} pass(es).")


# ---------- ptrade health ----------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check system health: config, database, quote source.

    Exit code 0 = healthy, 1 = unhealthy. Designed for Docker HEALTHCHECK.
    """
    checks: list[tuple[str, bool, str]] = []

    try:
        cfg = load_config(ctx.obj["config_path"])
        checks.append(("config", True, f"loaded (quotes={cfg.quotes.source})"))
    except Exception as e:
        checks.append(("config", False, str(e)))
        _print_health(checks)
        raise SystemExit(1)

    try:
        from execution import LedgerStore

        store = LedgerStore(cfg.database.path, busy_timeout=cfg.database.busy_timeout_seconds)
        checks.append(("database", True, f"{len(store.list_accounts())} account(s), {len(store.list_instruments())} instrument(s)"))
    except Exception as e:
        checks.append(("database", False, str(e)))

    try:
        _build_quote_source(cfg)
        checks.append(("quotes", True, f"{cfg.quotes.source} source ready"))
    except Exception as e:
        checks.append(("quotes", False, str(e)))

    _print_health(checks)
    healthy = all(ok for _, ok, _ in checks)
    raise SystemExit(0 if healthy else 1)


def _print_health(checks: list[tuple[str, bool, str]]) -> None:
    for name, ok, detail in checks:
        status = "OK" if ok else "FAIL"
        click.echo(f"  [{status}] {name}: {detail}")
    healthy = all(ok for _, ok, _ in checks)
    click.echo(f"\nHealth: {'HEALTHY' if healthy else 'UNHEALTHY'}")


if __name__ == "__main__":
    cli()
