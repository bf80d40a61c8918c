"""
Rollback Coordinator: restore a fiscal book's ledger from a snapshot.

State machine per attempt
-------------------------
``Idle -> Confirming -> (BackingUp) -> Restoring -> Done | Failed``

- **Confirming**: the typed confirmation must equal the fiscal book's display
  name, case-insensitively. A mismatch fails before any data is read or written.
- **BackingUp** (``create_pre_rollback_snapshot=True``, the default): a
  ``pre-rollback`` snapshot of the current ledger is created and committed
  (durably, when the store persists) before anything destructive happens.
  If it cannot be created the rollback is aborted.
- **Restoring**: the ledger is replaced wholesale with the snapshot's captured
  transactions. When the snapshot carries ``fiscalBookState`` the metadata is
  restored as well; if that second step fails the previous ledger content is
  written back, so callers never observe a half-restored book.

The whole sequence runs under the fiscal book's lock. The coordinator never
retries; a failed rollback needs a human decision.
"""

from __future__ import annotations

from collections.abc import Callable

from ..core.contracts.rollback import RollbackOutcome, RollbackState
from ..core.contracts.snapshot import CreationSource, Snapshot
from ..core.errors import CollaboratorError, ConfirmationMismatchError, SnapshotError
from ..core.ledger import FiscalBookProvider, LedgerProvider, call_with_timeout
from ..core.result import Result, err, ok
from ..core.settings import get_logger
from ..core.store.memory import SnapshotStore

logger = get_logger(__name__)

BACKUP_TAG = "pre-rollback"

StateListener = Callable[[str, RollbackState], None]


def confirmation_matches(typed: str | None, display_name: str | None) -> bool:
    """Case-insensitive exact match, ignoring surrounding whitespace."""
    if not typed or not display_name:
        return False
    return typed.strip().casefold() == display_name.strip().casefold()


class RollbackCoordinator:
    """Runs rollback attempts against one store / ledger / fiscal-book trio.

    Parameters
    ----------
    store:
        Snapshot store; its per-book locks also guard the ledger replacement.
    ledger, fiscal_books:
        Collaborators for the live transactions and the display name.
    on_state:
        Optional listener called with ``(snapshot_id, state)`` on each
        transition. Used by tests and for audit logging.
    """

    def __init__(
        self,
        store: SnapshotStore,
        ledger: LedgerProvider,
        fiscal_books: FiscalBookProvider,
        *,
        on_state: StateListener | None = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.fiscal_books = fiscal_books
        self.on_state = on_state

    def _enter(self, snapshot_id: str, state: RollbackState) -> None:
        logger.info("rollback to %s: %s", snapshot_id, state.value)
        if self.on_state is not None:
            self.on_state(snapshot_id, state)

    def rollback(
        self,
        snapshot_id: str,
        confirmation: str,
        *,
        create_pre_rollback_snapshot: bool = True,
        timeout: float | None = None,
    ) -> Result[RollbackOutcome, SnapshotError]:
        """Execute one rollback attempt.

        Returns
        -------
        Result[RollbackOutcome, SnapshotError]
            ``Ok`` with the outcome when the ledger was restored, otherwise
            ``Err`` with the causing error (``NotFoundError``,
            ``ConfirmationMismatchError``, ``OperationTimeoutError``, ...).
            Provider exceptions outside the domain hierarchy arrive as
            ``CollaboratorError`` with the original as ``__cause__``.
        """
        bound = self.store.io_timeout if timeout is None else timeout
        self._enter(snapshot_id, RollbackState.IDLE)
        try:
            target = self.store.get(snapshot_id)
            book_id = target.fiscal_book_id
            with self.store.locks.hold(book_id, bound):
                outcome = self._run_locked(
                    snapshot_id, confirmation, create_pre_rollback_snapshot, bound
                )
        except Exception as exc:
            error = CollaboratorError.wrap(exc)
            logger.warning("rollback to %s failed: %s", snapshot_id, error)
            self._enter(snapshot_id, RollbackState.FAILED)
            return err(error)

        self._enter(snapshot_id, RollbackState.DONE)
        return ok(outcome)

    def _run_locked(
        self,
        snapshot_id: str,
        confirmation: str,
        create_backup: bool,
        bound: float | None,
    ) -> RollbackOutcome:
        # Confirming
        self._enter(snapshot_id, RollbackState.CONFIRMING)
        target = self.store.get(snapshot_id)
        book_id = target.fiscal_book_id
        display_name = call_with_timeout(self.fiscal_books.get_display_name, bound, book_id)
        if not confirmation_matches(confirmation, display_name):
            raise ConfirmationMismatchError(
                "Confirmation text does not match the fiscal book name"
            )

        # BackingUp
        backup: Snapshot | None = None
        if create_backup:
            self._enter(snapshot_id, RollbackState.BACKING_UP)
            stamp = self.store.clock().isoformat(timespec="seconds")
            backup = self.store.create(
                book_id,
                name=f"Pre-rollback backup {stamp}",
                description=f"Automatic backup before rollback to '{target.name}'",
                tags=[BACKUP_TAG],
                creation_source=CreationSource.PRE_ROLLBACK,
                include_metadata=target.fiscal_book_state is not None,
                timeout=bound,
            )

        # Restoring
        self._enter(snapshot_id, RollbackState.RESTORING)
        target = self.store.get(snapshot_id)
        restored = list(target.captured_transactions)

        previous = None
        if target.fiscal_book_state is not None:
            previous = call_with_timeout(self.ledger.get_transactions, bound, book_id)

        call_with_timeout(self.ledger.replace_transactions, bound, book_id, restored)

        metadata_restored = False
        if target.fiscal_book_state is not None:
            try:
                call_with_timeout(
                    self.fiscal_books.restore_metadata, bound, book_id, target.fiscal_book_state
                )
                metadata_restored = True
            except Exception:
                logger.error("metadata restore failed for %s; reverting ledger", book_id)
                call_with_timeout(self.ledger.replace_transactions, bound, book_id, previous)
                raise

        return RollbackOutcome(
            snapshot_id=snapshot_id,
            fiscal_book_id=book_id,
            restored_transaction_count=len(restored),
            backup_snapshot_id=backup.id if backup is not None else None,
            metadata_restored=metadata_restored,
        )


__all__ = ["BACKUP_TAG", "RollbackCoordinator", "confirmation_matches"]
