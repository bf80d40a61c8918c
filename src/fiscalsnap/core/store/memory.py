"""
In-memory Snapshot Store with per-fiscal-book serialization and optional
write-through persistence.

This module implements the single source of truth for snapshot records. It
provides:

- ``create``: capture the live ledger of a fiscal book as a new snapshot.
- ``get`` / ``list`` / ``count`` / ``get_transactions``: reads.
- ``delete``: remove an unprotected snapshot.
- ``update_tags`` / ``toggle_protection`` / ``add_annotation`` /
  ``add_transaction_annotation``: the only post-creation mutations.

Design Goals
------------
- **Copy on capture**: captured transactions are value copies; nothing is
  shared with the live ledger.
- **Copy on write**: snapshots are frozen models. A mutation builds a new
  instance, persists it, and only then swaps it into the index. If any step
  fails the store is exactly as it was before the call.
- **Copy on read**: callers receive deep copies. The indexed instances hold
  dicts and extra-field lists that a frozen model does not protect, so they
  never leave the store.
- **Per-book ordering**: every mutation holds the fiscal book's lock from
  :class:`~fiscalsnap.core.store.locks.BookLocks`. Reads do not.
- **Observability**: every mutation bumps a revision counter and is logged.
"""

from __future__ import annotations

import itertools
import threading
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from ..contracts.base import utcnow
from ..contracts.snapshot import (
    Annotation,
    CreationSource,
    Snapshot,
    SnapshotStatistics,
    default_snapshot_name,
    normalize_tags,
)
from ..contracts.transaction import Transaction, copy_transactions
from ..errors import NotFoundError, ProtectedError, ValidationError
from ..ledger import FiscalBookProvider, LedgerProvider, call_with_timeout
from ..settings import get_logger
from .locks import BookLocks
from .storage import SnapshotWriter

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _paginate(items: list[Snapshot] | list[Transaction], limit: int | None, skip: int | None) -> list:
    start = max(skip or 0, 0)
    if limit is None or limit <= 0:
        return items[start:]
    return items[start : start + limit]


def _detached(snap: Snapshot) -> Snapshot:
    return snap.model_copy(deep=True)


class SnapshotStore:
    """
    Thread-safe snapshot repository.

    Attributes
    ----------
    _snapshots : dict[str, Snapshot]
        Index of live snapshots by id.
    _rev : int
        Monotonically increasing revision counter (bumps on every mutation).
    locks : BookLocks
        Per-fiscal-book locks shared with the rollback coordinator and the
        retention scheduler.
    """

    def __init__(
        self,
        ledger: LedgerProvider,
        fiscal_books: FiscalBookProvider,
        *,
        data_dir: Path | None = None,
        clock: Clock = utcnow,
        io_timeout: float | None = 10.0,
        locks: BookLocks | None = None,
    ) -> None:
        self.ledger = ledger
        self.fiscal_books = fiscal_books
        self.clock = clock
        self.io_timeout = io_timeout
        self.locks = locks if locks is not None else BookLocks()
        self._snapshots: dict[str, Snapshot] = {}
        self._index_lock = threading.Lock()
        self._rev: int = 0
        # insertion sequence; breaks ties between equal `created_at` values
        self._seq: dict[str, int] = {}
        self._ticket = itertools.count()
        self._writer: SnapshotWriter | None = SnapshotWriter(data_dir) if data_dir else None

        if self._writer is not None:
            for snap in sorted(self._writer.load_all(), key=lambda s: s.created_at):
                self._snapshots[snap.id] = snap
                self._seq[snap.id] = next(self._ticket)
            logger.info("loaded %d snapshots from %s", len(self._snapshots), data_dir)

    # ------------------------------- helpers --------------------------------

    @property
    def revision(self) -> int:
        return self._rev

    def _timeout(self, timeout: float | None) -> float | None:
        return self.io_timeout if timeout is None else timeout

    def _commit(self, snap: Snapshot) -> Snapshot:
        """Persist (when configured) then publish ``snap``; return a detached copy."""
        if self._writer is not None:
            self._writer.write(snap)
        with self._index_lock:
            self._snapshots[snap.id] = snap
            if snap.id not in self._seq:
                self._seq[snap.id] = next(self._ticket)
            self._rev += 1
        return _detached(snap)

    def _age_key(self, snap: Snapshot) -> tuple[datetime, int]:
        return (snap.created_at, self._seq.get(snap.id, 0))

    def _lookup(self, snapshot_id: str) -> Snapshot:
        with self._index_lock:
            snap = self._snapshots.get(snapshot_id)
        if snap is None:
            raise NotFoundError(f"Snapshot {snapshot_id} not found")
        return snap

    # ------------------------------- create ---------------------------------

    def create(
        self,
        fiscal_book_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        tags: Iterable[str] | None = None,
        creation_source: CreationSource = CreationSource.MANUAL,
        include_metadata: bool = False,
        timeout: float | None = None,
    ) -> Snapshot:
        """
        Capture the current ledger of ``fiscal_book_id`` as a new snapshot.

        Raises
        ------
        NotFoundError
            If the fiscal book does not exist.
        ValidationError
            If a tag is malformed.
        OperationTimeoutError
            If the lock or a ledger read exceeds ``timeout``.
        """
        normalized = normalize_tags(tags)
        bound = self._timeout(timeout)

        with self.locks.hold(fiscal_book_id, bound):
            if not call_with_timeout(self.fiscal_books.exists, bound, fiscal_book_id):
                raise NotFoundError(f"Fiscal book {fiscal_book_id} not found")

            live = call_with_timeout(self.ledger.get_transactions, bound, fiscal_book_id)
            captured = copy_transactions(live)
            metadata = (
                call_with_timeout(self.fiscal_books.get_metadata, bound, fiscal_book_id)
                if include_metadata
                else None
            )

            created_at = self.clock()
            snap = Snapshot(
                id=uuid.uuid4().hex,
                fiscal_book_id=fiscal_book_id,
                name=(name or "").strip() or default_snapshot_name(created_at),
                description=(description or "").strip() or None,
                tags=tuple(normalized),
                creation_source=creation_source,
                captured_transactions=tuple(captured),
                statistics=SnapshotStatistics.from_transactions(captured),
                fiscal_book_state=dict(metadata) if metadata is not None else None,
                created_at=created_at,
            )
            snap = self._commit(snap)

        logger.info(
            "created %s snapshot %s for fiscal book %s (%d transactions)",
            creation_source.value,
            snap.id,
            fiscal_book_id,
            snap.statistics.transaction_count,
        )
        return snap

    # ------------------------------- reads ----------------------------------

    def get(self, snapshot_id: str) -> Snapshot:
        """Return the snapshot or raise :class:`NotFoundError`."""
        return _detached(self._lookup(snapshot_id))

    def _matching(self, fiscal_book_id: str, tags: Iterable[str] | None) -> list[Snapshot]:
        wanted = set(normalize_tags(tags)) if tags else set()
        with self._index_lock:
            rows = [s for s in self._snapshots.values() if s.fiscal_book_id == fiscal_book_id]
        if wanted:
            rows = [s for s in rows if wanted.intersection(s.tags)]
        rows.sort(key=self._age_key, reverse=True)
        return rows

    def list(
        self,
        fiscal_book_id: str,
        *,
        tags: Iterable[str] | None = None,
        limit: int | None = None,
        skip: int | None = None,
    ) -> list[Snapshot]:
        """Snapshots of a fiscal book, newest first, optionally tag-filtered.

        A snapshot matches a tag filter when its tag set intersects ``tags``.
        """
        rows = _paginate(self._matching(fiscal_book_id, tags), limit, skip)
        return [_detached(s) for s in rows]

    def count(self, fiscal_book_id: str, *, tags: Iterable[str] | None = None) -> int:
        return len(self._matching(fiscal_book_id, tags))

    def get_transactions(
        self, snapshot_id: str, *, limit: int | None = None, skip: int | None = None
    ) -> list[Transaction]:
        """Paginated view of a snapshot's captured transactions."""
        snap = self._lookup(snapshot_id)
        rows = _paginate(list(snap.captured_transactions), limit, skip)
        return [tx.model_copy(deep=True) for tx in rows]

    def automatic(self, fiscal_book_id: str) -> list[Snapshot]:
        """Scheduler-created snapshots of a book, oldest first."""
        with self._index_lock:
            rows = [
                s
                for s in self._snapshots.values()
                if s.fiscal_book_id == fiscal_book_id and s.is_automatic
            ]
        rows.sort(key=self._age_key)
        return [_detached(s) for s in rows]

    def __len__(self) -> int:  # pragma: no cover - trivial
        return len(self._snapshots)

    # ------------------------------- delete ---------------------------------

    def delete(self, snapshot_id: str, *, timeout: float | None = None) -> None:
        """
        Remove a snapshot.

        Raises
        ------
        ProtectedError
            If the snapshot is protected. No caller can bypass this check.
        NotFoundError
            If the snapshot does not exist.
        """
        snap = self._lookup(snapshot_id)
        with self.locks.hold(snap.fiscal_book_id, self._timeout(timeout)):
            # Re-read under the lock: protection may have changed meanwhile.
            snap = self._lookup(snapshot_id)
            if snap.is_protected:
                raise ProtectedError(f"Snapshot {snapshot_id} is protected and cannot be deleted")
            if self._writer is not None:
                self._writer.remove(snapshot_id)
            with self._index_lock:
                del self._snapshots[snapshot_id]
                self._seq.pop(snapshot_id, None)
                self._rev += 1
        logger.info("deleted snapshot %s of fiscal book %s", snapshot_id, snap.fiscal_book_id)

    # ------------------------------- mutations ------------------------------

    def update_tags(
        self, snapshot_id: str, tags: Iterable[str], *, timeout: float | None = None
    ) -> Snapshot:
        """Replace the tag set wholesale (no merge). Same tags -> no-op."""
        normalized = tuple(normalize_tags(tags))
        snap = self._lookup(snapshot_id)
        with self.locks.hold(snap.fiscal_book_id, self._timeout(timeout)):
            snap = self._lookup(snapshot_id)
            if snap.tags == normalized:
                return _detached(snap)
            return self._commit(snap.with_changes(at=self.clock(), tags=normalized))

    def toggle_protection(
        self, snapshot_id: str, is_protected: bool, *, timeout: float | None = None
    ) -> Snapshot:
        """Set the protection flag; idempotent."""
        snap = self._lookup(snapshot_id)
        with self.locks.hold(snap.fiscal_book_id, self._timeout(timeout)):
            snap = self._lookup(snapshot_id)
            if snap.is_protected == is_protected:
                return _detached(snap)
            updated = self._commit(snap.with_changes(at=self.clock(), is_protected=is_protected))
        logger.info("snapshot %s protection set to %s", snapshot_id, is_protected)
        return updated

    def add_annotation(
        self,
        snapshot_id: str,
        content: str,
        created_by: str = "user",
        *,
        timeout: float | None = None,
    ) -> Snapshot:
        """Append to the snapshot's annotation log."""
        note = self._annotation(content, created_by)
        snap = self._lookup(snapshot_id)
        with self.locks.hold(snap.fiscal_book_id, self._timeout(timeout)):
            snap = self._lookup(snapshot_id)
            return self._commit(
                snap.with_changes(at=note.created_at, annotations=(*snap.annotations, note))
            )

    def add_transaction_annotation(
        self,
        snapshot_id: str,
        transaction_id: str,
        content: str,
        created_by: str = "user",
        *,
        timeout: float | None = None,
    ) -> Snapshot:
        """Append a note about one captured transaction; the record itself is untouched."""
        note = self._annotation(content, created_by)
        snap = self._lookup(snapshot_id)
        with self.locks.hold(snap.fiscal_book_id, self._timeout(timeout)):
            snap = self._lookup(snapshot_id)
            if transaction_id not in snap.transaction_ids():
                raise NotFoundError(
                    f"Transaction {transaction_id} is not part of snapshot {snapshot_id}"
                )
            notes = dict(snap.transaction_annotations)
            notes[transaction_id] = (*notes.get(transaction_id, ()), note)
            return self._commit(
                snap.with_changes(at=note.created_at, transaction_annotations=notes)
            )

    def _annotation(self, content: str, created_by: str) -> Annotation:
        text = (content or "").strip()
        if not text:
            raise ValidationError("Annotation content must not be empty")
        author = (created_by or "").strip() or "user"
        return Annotation(content=text, created_by=author, created_at=self.clock())


__all__ = ["SnapshotStore"]
