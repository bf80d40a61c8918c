"""
SnapshotService: the request/response surface of the snapshot subsystem.

Every operation collaborators may invoke is a method here; the HTTP router and
the tests call nothing else. The facade owns no state of its own. It wires the
store, comparator, rollback coordinator, scheduler and exporter together and
converts pydantic validation failures into the project's
:class:`~fiscalsnap.core.errors.ValidationError`.

Operations
----------
create_snapshot, list_snapshots, get_snapshot, get_snapshot_transactions,
delete_snapshot, compare_snapshot, update_tags, toggle_protection,
add_annotation, add_transaction_annotation, rollback_to_snapshot,
clone_to_new_fiscal_book, get_schedule, update_schedule, export_snapshot,
export_comparison, trigger_before_status_change.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..core.contracts.base import utcnow
from ..core.contracts.comparison import ComparisonResult
from ..core.contracts.fiscal_book import FiscalBook
from ..core.contracts.rollback import RollbackOutcome
from ..core.contracts.schedule import ScheduleConfig
from ..core.contracts.snapshot import Snapshot
from ..core.contracts.transaction import Transaction, copy_transactions
from ..core.errors import CollaboratorError, NotFoundError, ValidationError
from ..core.ledger import (
    FiscalBookProvider,
    InMemoryFiscalBooks,
    InMemoryLedger,
    LedgerProvider,
    call_with_timeout,
)
from ..core.settings import Settings, get_logger, load_settings
from ..core.store.memory import Clock, SnapshotStore
from .comparator import Comparator
from .exporter import ExportArtifact, ExportFormat, export
from .rollback import RollbackCoordinator
from .scheduler import RetentionScheduler, ScheduleRegistry, TickReport

logger = get_logger(__name__)


def _validation_message(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(p) for p in error.get("loc", ()))
        parts.append(f"{loc}: {error.get('msg')}" if loc else str(error.get("msg")))
    return "; ".join(parts) or str(exc)


class SnapshotService:
    """Facade over the snapshot subsystem for one pair of collaborators."""

    def __init__(
        self,
        ledger: LedgerProvider,
        fiscal_books: FiscalBookProvider,
        *,
        data_dir: Path | None = None,
        clock: Clock = utcnow,
        io_timeout: float | None = 10.0,
        registry: ScheduleRegistry | None = None,
    ) -> None:
        self.ledger = ledger
        self.fiscal_books = fiscal_books
        self.store = SnapshotStore(
            ledger, fiscal_books, data_dir=data_dir, clock=clock, io_timeout=io_timeout
        )
        self.comparator = Comparator(self.store, ledger)
        self.rollbacks = RollbackCoordinator(self.store, ledger, fiscal_books)
        self.scheduler = RetentionScheduler(self.store, registry)

    @classmethod
    def in_memory(cls, settings: Settings | None = None, **kwargs: Any) -> SnapshotService:
        """Build a service over fresh in-memory collaborators.

        The in-memory fiscal-book provider is wired to call the scheduler's
        before-status-change trigger.
        """
        cfg = settings or load_settings()
        ledger = InMemoryLedger()
        books = InMemoryFiscalBooks(ledger)
        kwargs.setdefault("data_dir", cfg.data_dir)
        kwargs.setdefault("io_timeout", cfg.io_timeout_seconds)
        service = cls(ledger, books, **kwargs)
        books.add_status_hook(service.scheduler.status_hook)
        return service

    # ------------------------------- snapshots ------------------------------

    def create_snapshot(
        self,
        fiscal_book_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        tags: Iterable[str] | None = None,
        include_metadata: bool = False,
        timeout: float | None = None,
    ) -> Snapshot:
        return self.store.create(
            fiscal_book_id,
            name=name,
            description=description,
            tags=tags,
            include_metadata=include_metadata,
            timeout=timeout,
        )

    def list_snapshots(
        self,
        fiscal_book_id: str,
        *,
        tags: Iterable[str] | None = None,
        limit: int | None = None,
        skip: int | None = None,
    ) -> list[Snapshot]:
        return self.store.list(fiscal_book_id, tags=tags, limit=limit, skip=skip)

    def count_snapshots(self, fiscal_book_id: str, *, tags: Iterable[str] | None = None) -> int:
        return self.store.count(fiscal_book_id, tags=tags)

    def get_snapshot(self, snapshot_id: str) -> Snapshot:
        return self.store.get(snapshot_id)

    def get_snapshot_transactions(
        self, snapshot_id: str, *, limit: int | None = None, skip: int | None = None
    ) -> list[Transaction]:
        return self.store.get_transactions(snapshot_id, limit=limit, skip=skip)

    def delete_snapshot(self, snapshot_id: str, *, timeout: float | None = None) -> None:
        self.store.delete(snapshot_id, timeout=timeout)

    def compare_snapshot(self, snapshot_id: str, *, timeout: float | None = None) -> ComparisonResult:
        return self.comparator.compare(snapshot_id, timeout=timeout)

    def update_tags(self, snapshot_id: str, tags: Iterable[str]) -> Snapshot:
        return self.store.update_tags(snapshot_id, tags)

    def toggle_protection(self, snapshot_id: str, is_protected: bool) -> Snapshot:
        return self.store.toggle_protection(snapshot_id, is_protected)

    def add_annotation(self, snapshot_id: str, content: str, created_by: str = "user") -> Snapshot:
        return self.store.add_annotation(snapshot_id, content, created_by)

    def add_transaction_annotation(
        self, snapshot_id: str, transaction_id: str, content: str, created_by: str = "user"
    ) -> Snapshot:
        return self.store.add_transaction_annotation(
            snapshot_id, transaction_id, content, created_by
        )

    # ------------------------------- rollback / clone -----------------------

    def rollback_to_snapshot(
        self,
        snapshot_id: str,
        confirmation: str,
        *,
        create_pre_rollback_snapshot: bool = True,
        timeout: float | None = None,
    ) -> RollbackOutcome:
        """Restore the ledger from ``snapshot_id``; raises the causing error on failure."""
        result = self.rollbacks.rollback(
            snapshot_id,
            confirmation,
            create_pre_rollback_snapshot=create_pre_rollback_snapshot,
            timeout=timeout,
        )
        return result.unwrap()

    def clone_to_new_fiscal_book(
        self,
        snapshot_id: str,
        overrides: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> FiscalBook:
        """Create a new fiscal book seeded with the snapshot's captured transactions.

        Tags and annotations stay with the snapshot; the new book records its
        origin in ``reference``. Captured ``fiscalBookId``/``fiscalBookName``
        fields are rewritten to point at the new book.

        If seeding the ledger fails, the already created book is reported in the
        log and in a note on the raised error.
        """
        snap = self.store.get(snapshot_id)
        bound = self.store.io_timeout if timeout is None else timeout

        data: dict[str, Any] = {}
        if snap.fiscal_book_state:
            data.update({k: v for k, v in snap.fiscal_book_state.items() if v is not None})
        data["bookName"] = f"{snap.name} (clone)"
        data["reference"] = f"snapshot:{snap.id}"
        data["status"] = "Aberto"
        data.update(dict(overrides or {}))
        data.pop("id", None)

        try:
            book = call_with_timeout(self.fiscal_books.create_fiscal_book, bound, data)
        except PydanticValidationError as exc:
            raise ValidationError(_validation_message(exc)) from exc

        seeded = []
        for tx in copy_transactions(snap.captured_transactions):
            payload = tx.dump()
            payload["fiscalBookId"] = book.id
            payload["fiscalBookName"] = book.book_name
            seeded.append(Transaction.model_validate(payload))
        try:
            call_with_timeout(self.ledger.replace_transactions, bound, book.id, seeded)
        except Exception as exc:
            # the provider has no delete; the empty book is left for manual cleanup
            logger.error(
                "clone of snapshot %s left fiscal book %s without transactions: %s",
                snapshot_id,
                book.id,
                exc,
            )
            error = CollaboratorError.wrap(exc)
            error.add_note(f"fiscal book {book.id} was created without transactions")
            raise error

        logger.info(
            "cloned snapshot %s into fiscal book %s (%d transactions)",
            snapshot_id,
            book.id,
            len(seeded),
        )
        return book

    # ------------------------------- schedules ------------------------------

    def get_schedule(self, fiscal_book_id: str) -> ScheduleConfig | None:
        """Stored schedule of the book, or None when it never had one."""
        return self.scheduler.registry.get(fiscal_book_id)

    def default_schedule(self) -> ScheduleConfig:
        """Disabled monthly schedule with the configured default retention."""
        return ScheduleConfig(retention_count=load_settings().default_retention)

    def update_schedule(
        self, fiscal_book_id: str, config: ScheduleConfig | Mapping[str, Any]
    ) -> ScheduleConfig:
        """Upsert the schedule of a fiscal book.

        Raises
        ------
        NotFoundError
            If the fiscal book does not exist.
        ValidationError
            If a field is out of range.
        """
        try:
            if isinstance(config, ScheduleConfig):
                model = config
            else:
                payload = dict(config)
                if "retentionCount" not in payload and "retention_count" not in payload:
                    payload["retentionCount"] = load_settings().default_retention
                model = ScheduleConfig.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(_validation_message(exc)) from exc

        if not call_with_timeout(self.fiscal_books.exists, self.store.io_timeout, fiscal_book_id):
            raise NotFoundError(f"Fiscal book {fiscal_book_id} not found")

        with self.store.locks.hold(fiscal_book_id, self.store.io_timeout):
            saved = self.scheduler.registry.upsert(fiscal_book_id, model)
        logger.info(
            "schedule for %s: enabled=%s frequency=%s retention=%d",
            fiscal_book_id,
            saved.enabled,
            saved.frequency.value,
            saved.retention_count,
        )
        return saved

    def trigger_before_status_change(self, fiscal_book_id: str) -> TickReport | None:
        return self.scheduler.trigger_before_status_change(fiscal_book_id)

    # ------------------------------- export ---------------------------------

    def export_snapshot(
        self, snapshot_id: str, fmt: str | ExportFormat = "json", *, on: date | None = None
    ) -> ExportArtifact:
        return export(self.store.get(snapshot_id), fmt, on=on)

    def export_comparison(
        self, snapshot_id: str, fmt: str | ExportFormat = "json", *, on: date | None = None
    ) -> ExportArtifact:
        parsed = ExportFormat.parse(fmt)
        result = self.compare_snapshot(snapshot_id)
        return export(result, parsed, on=on, compared_at=self.store.clock())


__all__ = ["SnapshotService"]
