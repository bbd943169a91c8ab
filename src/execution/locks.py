"""In-process mutual exclusion keyed by account and by (account, instrument)."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Hashable, Iterator

from trading_core.errors import LockTimeoutError


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """One lock per key, alive only while some caller holds or waits for it.

    ``hold(*keys)`` acquires in the order given and releases in reverse. Callers
    must always pass keys in the same order (account first, then position) so
    two holders cannot deadlock. An entry is dropped when its last user leaves,
    so the table does not grow with every account ever traded.
    """

    def __init__(self, timeout: float = -1) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}
        self._timeout = timeout

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = _Entry()
                self._entries[key] = entry
            entry.users += 1
            return entry

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            entry = self._entries[key]
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def locked(self, key: Hashable) -> bool:
        with self._guard:
            entry = self._entries.get(key)
            return entry is not None and entry.lock.locked()

    @contextmanager
    def hold(self, *keys: Hashable) -> Iterator[None]:
        entries = [self._checkout(key) for key in keys]
        acquired: list[threading.Lock] = []
        try:
            for key, entry in zip(keys, entries):
                if not entry.lock.acquire(timeout=self._timeout):
                    raise LockTimeoutError(f"Timed out waiting for lock {key!r}")
                acquired.append(entry.lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in keys:
                self._checkin(key)


def account_key(account_id: str) -> tuple[str, str]:
    return ("account", account_id)


def position_key(account_id: str, instrument_id: str) -> tuple[str, str, str]:
    return ("position", account_id, instrument_id)
