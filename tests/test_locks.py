"""Concurrency tests: per-book locks and bounded collaborator calls."""

from __future__ import annotations

import threading
import time

import pytest

from fiscalsnap.core.errors import OperationTimeoutError, SnapshotError
from fiscalsnap.core.ledger import InMemoryFiscalBooks, InMemoryLedger, call_with_timeout
from fiscalsnap.core.store.locks import BookLocks
from fiscalsnap.core.store.memory import SnapshotStore


def _hold_in_thread(locks: BookLocks, book_id: str, release: threading.Event) -> threading.Thread:
    held = threading.Event()

    def worker() -> None:
        with locks.hold(book_id):
            held.set()
            release.wait(2)

    t = threading.Thread(target=worker, daemon=True)
    t.start()
    held.wait(2)
    return t


def test_lock_timeout_is_retryable() -> None:
    locks = BookLocks()
    release = threading.Event()
    t = _hold_in_thread(locks, "b1", release)
    try:
        with pytest.raises(OperationTimeoutError) as info:
            with locks.hold("b1", timeout=0.05):
                pass
        assert info.value.retryable is True
        assert isinstance(info.value, TimeoutError)
        assert isinstance(info.value, SnapshotError)

        # other books do not contend
        with locks.hold("b2", timeout=0.05):
            pass
    finally:
        release.set()
        t.join(2)


def test_lock_is_reentrant() -> None:
    locks = BookLocks()
    with locks.hold("b1", timeout=0.05):
        with locks.hold("b1", timeout=0.05):
            pass


def test_store_mutation_waits_for_book_lock() -> None:
    ledger = InMemoryLedger()
    books = InMemoryFiscalBooks(ledger)
    books.add({"id": "b1", "bookName": "Livro Teste"})
    store = SnapshotStore(ledger, books, io_timeout=None)

    release = threading.Event()
    t = _hold_in_thread(store.locks, "b1", release)
    try:
        with pytest.raises(OperationTimeoutError):
            store.create("b1", timeout=0.05)
        assert store.count("b1") == 0
    finally:
        release.set()
        t.join(2)
    assert store.create("b1").fiscal_book_id == "b1"


def test_call_with_timeout_bounds_slow_collaborators() -> None:
    with pytest.raises(OperationTimeoutError):
        call_with_timeout(time.sleep, 0.05, 0.5)
    assert call_with_timeout(lambda x: x * 2, 1.0, 21) == 42


def test_call_with_timeout_propagates_errors() -> None:
    def boom() -> None:
        raise KeyError("x")

    with pytest.raises(KeyError):
        call_with_timeout(boom, 1.0)
