"""Instrument catalog views: symbol/name search and options chains."""

from __future__ import annotations

from dataclasses import dataclass, field

from execution.store import LedgerStore
from trading_core.contracts import Instrument, InstrumentType

SEARCH_LIMIT = 20


@dataclass
class OptionsExpiry:
    calls: list[Instrument] = field(default_factory=list)
    puts: list[Instrument] = field(default_factory=list)


def search_instruments(
    store: LedgerStore,
    query: str,
    instrument_type: InstrumentType | None = None,
) -> list[Instrument]:
    query = query.strip()
    if not query:
        return []
    return store.search_instruments(query, instrument_type, limit=SEARCH_LIMIT)


def options_chain(
    store: LedgerStore,
    underlying_symbol: str,
    expiry_date: str | None = None,
) -> dict[str, OptionsExpiry]:
    """Options on *underlying_symbol* grouped by expiry date (YYYY-MM-DD).

    Expiries are in ascending order, strikes ascending within each side.
    Anything not marked CALL is listed as a put.
    """
    chain: dict[str, OptionsExpiry] = {}
    for option in store.list_options(underlying_symbol, expiry_date):
        expiry = (option.expiry_date or "")[:10]
        group = chain.setdefault(expiry, OptionsExpiry())
        if (option.option_type or "").upper() == "CALL":
            group.calls.append(option)
        else:
            group.puts.append(option)
    return chain
