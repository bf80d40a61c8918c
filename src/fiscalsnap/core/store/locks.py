"""Per-fiscal-book mutation locks.

One re-entrant lock per fiscal book id: every mutation of a book's snapshots,
every rollback and every scheduler evaluation for that book holds it, so
those operations are serialized per book while different books never contend.
Re-entrancy lets the rollback coordinator and the scheduler call back into
the store (create/delete) while already holding the book's lock.

Acquisition is bounded; exceeding the bound raises the retryable
:class:`~fiscalsnap.core.errors.OperationTimeoutError`.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from ..errors import OperationTimeoutError


class BookLocks:
    """Lazily created registry of ``threading.RLock`` keyed by fiscal book id."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, fiscal_book_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(fiscal_book_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[fiscal_book_id] = lock
            return lock

    @contextmanager
    def hold(self, fiscal_book_id: str, timeout: float | None = None) -> Iterator[None]:
        """Hold the book's lock for the duration of the ``with`` block."""
        lock = self.lock_for(fiscal_book_id)
        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        if not acquired:
            raise OperationTimeoutError(
                f"Fiscal book {fiscal_book_id} is busy; lock not acquired within {timeout}s"
            )
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:  # pragma: no cover - trivial
        return len(self._locks)


__all__ = ["BookLocks"]
