"""Tests for keyed locks."""

import threading

import pytest

from execution.locks import KeyedLocks, account_key, position_key
from trading_core.errors import ExecutionError, LockTimeoutError


def test_hold_locks_keys_and_evicts_on_exit() -> None:
    locks = KeyedLocks()
    with locks.hold(account_key("a1"), position_key("a1", "i1")):
        assert locks.locked(account_key("a1"))
        assert locks.locked(position_key("a1", "i1"))
        assert not locks.locked(account_key("a2"))
        assert len(locks) == 2
    assert len(locks) == 0
    assert not locks.locked(account_key("a1"))


def test_many_accounts_leave_no_entries() -> None:
    locks = KeyedLocks()
    for n in range(50):
        with locks.hold(account_key(f"a{n}")):
            pass
    assert len(locks) == 0


def test_hold_releases_on_error() -> None:
    locks = KeyedLocks()
    with pytest.raises(RuntimeError):
        with locks.hold(account_key("a1"), position_key("a1", "i1")):
            raise RuntimeError("boom")
    assert not locks.locked(account_key("a1"))
    assert not locks.locked(position_key("a1", "i1"))
    assert len(locks) == 0


def test_entry_kept_while_another_caller_waits() -> None:
    locks = KeyedLocks(timeout=2)
    held = threading.Event()
    release = threading.Event()
    order: list[str] = []

    def holder() -> None:
        with locks.hold(account_key("a1")):
            held.set()
            release.wait(2)
            order.append("holder")

    t = threading.Thread(target=holder)
    t.start()
    held.wait(2)

    def waiter() -> None:
        with locks.hold(account_key("a1")):
            order.append("waiter")

    w = threading.Thread(target=waiter)
    w.start()
    release.set()
    t.join()
    w.join()
    assert order == ["holder", "waiter"]
    assert len(locks) == 0


def test_timeout_raises_and_releases_acquired() -> None:
    locks = KeyedLocks(timeout=0.05)
    held = threading.Event()
    release = threading.Event()

    def holder() -> None:
        with locks.hold(position_key("a1", "i1")):
            held.set()
            release.wait(2)

    t = threading.Thread(target=holder)
    t.start()
    held.wait(2)
    try:
        with pytest.raises(LockTimeoutError) as exc_info:
            with locks.hold(account_key("a1"), position_key("a1", "i1")):
                pass
        assert isinstance(exc_info.value, ExecutionError)
        assert exc_info.value.kind == "LOCK_TIMEOUT"
        assert not locks.locked(account_key("a1"))
        assert len(locks) == 1
    finally:
        release.set()
        t.join()
    assert len(locks) == 0
