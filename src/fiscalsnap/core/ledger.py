"""
Collaborator contracts consumed by the snapshot subsystem, plus in-memory
implementations and a bounded-call helper.

Contracts
---------
- :class:`LedgerProvider`: ``get_transactions`` / ``replace_transactions``.
- :class:`FiscalBookProvider`: display name lookup, existence, metadata
  read/restore, and creation of new books (used by clone).

Bounded I/O
-----------
Every call into a collaborator goes through :func:`call_with_timeout`, which
runs it on a shared worker pool and raises
:class:`~fiscalsnap.core.errors.OperationTimeoutError` once the caller's
bound is exceeded. A timed-out write may still complete in the background;
callers that write (rollback) surface the timeout and never retry on their own.

The in-memory providers are what the HTTP app, the CLI and the test-suite run
against. Production deployments plug their own providers into
:class:`~fiscalsnap.services.facade.SnapshotService`.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Protocol, TypeVar

from .contracts.fiscal_book import METADATA_FIELDS, FiscalBook
from .contracts.transaction import Transaction, TransactionLike, copy_transactions
from .errors import NotFoundError, OperationTimeoutError
from .settings import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

StatusHook = Callable[[str, str, str], None]

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="fiscalsnap-io")


# --------------------------------------------------------------------------- #
# Collaborator protocols
# --------------------------------------------------------------------------- #


class LedgerProvider(Protocol):
    def get_transactions(self, fiscal_book_id: str) -> list[Transaction]: ...
    def replace_transactions(self, fiscal_book_id: str, transactions: list[Transaction]) -> None: ...


class FiscalBookProvider(Protocol):
    def exists(self, fiscal_book_id: str) -> bool: ...
    def get_display_name(self, fiscal_book_id: str) -> str: ...
    def get_metadata(self, fiscal_book_id: str) -> dict[str, Any]: ...
    def restore_metadata(self, fiscal_book_id: str, metadata: Mapping[str, Any]) -> None: ...
    def create_fiscal_book(self, data: Mapping[str, Any]) -> FiscalBook: ...


# --------------------------------------------------------------------------- #
# Bounded calls
# --------------------------------------------------------------------------- #


def call_with_timeout(fn: Callable[..., T], timeout: float | None, *args: Any) -> T:
    """Run ``fn(*args)`` and wait at most ``timeout`` seconds for it.

    ``timeout=None`` waits indefinitely (only used by tests and the CLI, which
    talk to in-process providers). Exceptions raised by ``fn`` propagate
    unchanged.
    """
    future = _executor.submit(fn, *args)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as exc:
        future.cancel()
        name = getattr(fn, "__qualname__", repr(fn))
        logger.warning("collaborator call %s exceeded %ss", name, timeout)
        raise OperationTimeoutError(f"{name} did not complete within {timeout}s") from exc


# --------------------------------------------------------------------------- #
# In-memory implementations
# --------------------------------------------------------------------------- #


class InMemoryLedger:
    """Dictionary-backed ledger keyed by fiscal book id.

    Reads and writes hand out / take value copies, so callers can never alias
    the stored records.
    """

    def __init__(self) -> None:
        self._books: dict[str, list[Transaction]] = {}
        self._lock = threading.Lock()

    def seed(self, fiscal_book_id: str, transactions: Iterable[TransactionLike] = ()) -> None:
        with self._lock:
            self._books[fiscal_book_id] = copy_transactions(transactions)

    def get_transactions(self, fiscal_book_id: str) -> list[Transaction]:
        with self._lock:
            if fiscal_book_id not in self._books:
                raise NotFoundError(f"Fiscal book {fiscal_book_id} not found")
            return copy_transactions(self._books[fiscal_book_id])

    def replace_transactions(self, fiscal_book_id: str, transactions: list[Transaction]) -> None:
        copies = copy_transactions(transactions)
        with self._lock:
            if fiscal_book_id not in self._books:
                raise NotFoundError(f"Fiscal book {fiscal_book_id} not found")
            self._books[fiscal_book_id] = copies

    # Convenience mutators used by tests and demos to simulate ledger edits.
    def upsert(self, fiscal_book_id: str, record: TransactionLike) -> None:
        (tx,) = copy_transactions([record])
        with self._lock:
            rows = self._books.setdefault(fiscal_book_id, [])
            for i, existing in enumerate(rows):
                if existing.id == tx.id:
                    rows[i] = tx
                    return
            rows.append(tx)

    def remove(self, fiscal_book_id: str, transaction_id: str) -> None:
        with self._lock:
            rows = self._books.get(fiscal_book_id, [])
            self._books[fiscal_book_id] = [t for t in rows if t.id != transaction_id]


class InMemoryFiscalBooks:
    """Dictionary-backed fiscal-book collaborator with status-change hooks.

    Hooks registered with :meth:`add_status_hook` run synchronously *before* a
    status transition is committed; an exception in a hook aborts the change.
    """

    def __init__(self, ledger: InMemoryLedger | None = None) -> None:
        self._books: dict[str, FiscalBook] = {}
        self._ledger = ledger
        self._hooks: list[StatusHook] = []
        self._lock = threading.Lock()

    def add(self, book: FiscalBook | Mapping[str, Any]) -> FiscalBook:
        model = book if isinstance(book, FiscalBook) else FiscalBook.model_validate(dict(book))
        with self._lock:
            self._books[model.id] = model
        if self._ledger is not None and not self._ledger_has(model.id):
            self._ledger.seed(model.id)
        return model

    def _ledger_has(self, fiscal_book_id: str) -> bool:
        try:
            self._ledger.get_transactions(fiscal_book_id)  # type: ignore[union-attr]
        except NotFoundError:
            return False
        return True

    def get(self, fiscal_book_id: str) -> FiscalBook:
        with self._lock:
            book = self._books.get(fiscal_book_id)
        if book is None:
            raise NotFoundError(f"Fiscal book {fiscal_book_id} not found")
        return book

    def exists(self, fiscal_book_id: str) -> bool:
        with self._lock:
            return fiscal_book_id in self._books

    def get_display_name(self, fiscal_book_id: str) -> str:
        return self.get(fiscal_book_id).book_name

    def get_metadata(self, fiscal_book_id: str) -> dict[str, Any]:
        return self.get(fiscal_book_id).metadata()

    def restore_metadata(self, fiscal_book_id: str, metadata: Mapping[str, Any]) -> None:
        current = self.get(fiscal_book_id)
        payload = current.dump()
        payload.update({k: v for k, v in metadata.items() if k in METADATA_FIELDS})
        with self._lock:
            self._books[fiscal_book_id] = FiscalBook.model_validate(payload)

    def create_fiscal_book(self, data: Mapping[str, Any]) -> FiscalBook:
        payload = dict(data)
        payload.setdefault("id", uuid.uuid4().hex)
        return self.add(payload)

    # ----- status lifecycle (outside this subsystem; hooks only) -------------

    def add_status_hook(self, hook: StatusHook) -> None:
        """Register ``hook(fiscal_book_id, old_status, new_status)``."""
        self._hooks.append(hook)

    def change_status(self, fiscal_book_id: str, status: str) -> FiscalBook:
        book = self.get(fiscal_book_id)
        for hook in self._hooks:
            hook(fiscal_book_id, book.status, status)
        updated = book.model_copy(update={"status": status})
        with self._lock:
            self._books[fiscal_book_id] = updated
        return updated


__all__ = [
    "FiscalBookProvider",
    "InMemoryFiscalBooks",
    "InMemoryLedger",
    "LedgerProvider",
    "StatusHook",
    "call_with_timeout",
]
