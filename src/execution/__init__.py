"""
Paper execution: PENDING order -> FILLED in one SQLite transaction.

Single fill path, explicit locking, restart-safe. No live capital.
"""

from execution.catalog import OptionsExpiry, options_chain, search_instruments
from execution.executor import OrderExecutor
from execution.locks import KeyedLocks
from execution.portfolio import (
    AccountSummary,
    Revaluation,
    account_summary,
    open_account,
    performance,
    revalue_account,
)
from execution.store import LedgerStore

__all__ = [
    "AccountSummary",
    "account_summary",
    "KeyedLocks",
    "LedgerStore",
    "open_account",
    "options_chain",
    "OptionsExpiry",
    "OrderExecutor",
    "performance",
    "revalue_account",
    "Revaluation",
    "search_instruments",
]
