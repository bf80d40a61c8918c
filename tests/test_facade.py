"""Tests for the SnapshotService facade: clone, schedules and error conversion."""

from __future__ import annotations

import json
from datetime import UTC, date, datetime

import pytest

from fiscalsnap.core.contracts.schedule import Frequency
from fiscalsnap.core.contracts.transaction import Transaction
from fiscalsnap.core.errors import (
    CollaboratorError,
    ConfirmationMismatchError,
    NotFoundError,
    ProtectedError,
    UnsupportedFormatError,
    ValidationError,
)
from fiscalsnap.core.ledger import InMemoryFiscalBooks, InMemoryLedger
from fiscalsnap.core.settings import Settings
from fiscalsnap.services.facade import SnapshotService


@pytest.fixture  # type: ignore[misc]
def service() -> SnapshotService:
    svc = SnapshotService.in_memory(
        Settings(), data_dir=None, clock=lambda: datetime(2024, 3, 1, tzinfo=UTC)
    )
    books = svc.fiscal_books
    assert isinstance(books, InMemoryFiscalBooks)
    books.add({"id": "b1", "bookName": "Livro Teste", "bookPeriod": "2024", "bookType": "Receitas"})
    ledger = svc.ledger
    assert isinstance(ledger, InMemoryLedger)
    ledger.seed(
        "b1",
        [
            {"id": "t1", "transactionValue": "10,00", "fiscalBookId": "b1", "fiscalBookName": "Livro Teste"},
            {"id": "t2", "transactionValue": "-3,00", "fiscalBookId": "b1", "fiscalBookName": "Livro Teste"},
        ],
    )
    return svc


def test_clone_creates_a_new_book_with_rewritten_transactions(service: SnapshotService) -> None:
    snap = service.create_snapshot("b1", name="Jan", tags=["backup"], include_metadata=True)
    service.add_annotation(snap.id, "note")

    book = service.clone_to_new_fiscal_book(snap.id)

    assert book.id != "b1"
    assert book.book_name == "Jan (clone)"
    assert book.book_type == "Receitas"
    assert book.reference == f"snapshot:{snap.id}"
    rows = service.ledger.get_transactions(book.id)
    assert [t.id for t in rows] == ["t1", "t2"]
    assert {t.fiscal_book_id for t in rows} == {book.id}
    assert {t.fiscal_book_name for t in rows} == {"Jan (clone)"}
    # the new book starts without snapshots; tags and annotations stay behind
    assert service.list_snapshots(book.id) == []
    assert service.ledger.get_transactions("b1")[0].fiscal_book_id == "b1"


def test_clone_overrides(service: SnapshotService) -> None:
    snap = service.create_snapshot("b1")
    book = service.clone_to_new_fiscal_book(snap.id, {"bookName": "Livro 2025", "bookPeriod": "2025"})
    assert book.book_name == "Livro 2025"
    assert book.book_period == "2025"


class ReadOnlyLedger(InMemoryLedger):
    def replace_transactions(self, fiscal_book_id: str, transactions: list[Transaction]) -> None:
        raise RuntimeError("ledger is read-only")


def test_clone_reports_the_unseeded_book_when_seeding_fails() -> None:
    ledger = ReadOnlyLedger()
    books = InMemoryFiscalBooks(ledger)
    books.add({"id": "b1", "bookName": "Livro Teste"})
    ledger.seed("b1", [{"id": "t1", "transactionValue": "10,00"}])
    service = SnapshotService(ledger, books, io_timeout=None)
    snap = service.create_snapshot("b1", name="Jan")

    with pytest.raises(CollaboratorError) as excinfo:
        service.clone_to_new_fiscal_book(snap.id)

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    (note,) = excinfo.value.__notes__
    orphan_id = note.split()[2]
    assert orphan_id != "b1"
    assert books.get(orphan_id).book_name == "Jan (clone)"


def test_update_schedule_validates_and_applies_default_retention(service: SnapshotService) -> None:
    assert service.get_schedule("b1") is None
    saved = service.update_schedule("b1", {"enabled": True, "frequency": "weekly", "dayOfWeek": 3})
    assert saved.frequency is Frequency.WEEKLY
    assert saved.retention_count == 12
    assert service.get_schedule("b1") == saved

    with pytest.raises(ValidationError):
        service.update_schedule("b1", {"retentionCount": 500})
    with pytest.raises(NotFoundError):
        service.update_schedule("nope", {"enabled": True})
    assert service.get_schedule("b1") == saved


def test_update_schedule_rejects_malformed_auto_tags(service: SnapshotService) -> None:
    with pytest.raises(ValidationError, match="autoTags"):
        service.update_schedule("b1", {"enabled": True, "autoTags": ["a,b", "x" * 80]})
    assert service.get_schedule("b1") is None

    saved = service.update_schedule("b1", {"enabled": True, "autoTags": [" Month-End ", "month-end"]})
    assert saved.auto_tags == ["month-end"]


def test_rollback_errors_are_raised(service: SnapshotService) -> None:
    snap = service.create_snapshot("b1")
    with pytest.raises(ConfirmationMismatchError):
        service.rollback_to_snapshot(snap.id, "Livro")
    outcome = service.rollback_to_snapshot(snap.id, "LIVRO TESTE")
    assert outcome.restored_transaction_count == 2


def test_protected_delete_and_exports(service: SnapshotService) -> None:
    snap = service.create_snapshot("b1", name="Jan")
    service.toggle_protection(snap.id, True)
    with pytest.raises(ProtectedError):
        service.delete_snapshot(snap.id)
    with pytest.raises(UnsupportedFormatError):
        service.export_snapshot(snap.id, "pdf")

    artifact = service.export_comparison(snap.id, "json", on=date(2024, 3, 2))
    assert artifact.filename == "comparison-Jan-2024-03-02.json"
    assert json.loads(artifact.content)["comparedAt"] == "2024-03-01T00:00:00+00:00"


def test_status_change_hook_is_wired(service: SnapshotService) -> None:
    service.update_schedule("b1", {"enabled": True, "frequency": "before-status-change"})
    books = service.fiscal_books
    assert isinstance(books, InMemoryFiscalBooks)
    books.change_status("b1", "Fechado")
    assert service.count_snapshots("b1") == 1
    assert service.trigger_before_status_change("b1") is not None
    assert service.count_snapshots("b1") == 2
