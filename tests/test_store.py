"""Unit tests for the in-memory Snapshot Store and its disk writer.

Scenarios
---------
1. **Value copy**: ledger edits after capture never leak into a snapshot.
2. **Ordering & filters**: newest first, tag intersection, pagination.
3. **Protection**: protected snapshots cannot be deleted; unprotect, then delete.
4. **Mutations**: tag replacement is idempotent, annotations append, and
   editing a returned snapshot never reaches the stored one.
5. **Persistence**: snapshots written to disk are reloaded by a new store.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from fiscalsnap.core.contracts.snapshot import CreationSource
from fiscalsnap.core.errors import NotFoundError, ProtectedError, ValidationError
from fiscalsnap.core.ledger import InMemoryFiscalBooks, InMemoryLedger
from fiscalsnap.core.store.memory import SnapshotStore
from fiscalsnap.core.store.storage import SnapshotWriter


class FakeClock:
    """Callable clock advanced by hand."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


LEDGER = [
    {"id": "t1", "transactionName": "Venda", "transactionValue": "100,00", "transactionType": "credit"},
    {"id": "t2", "transactionName": "Aluguel", "transactionValue": "40,00", "transactionType": "debit"},
]


@pytest.fixture  # type: ignore[misc]
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 10, 9, 0, tzinfo=UTC))


@pytest.fixture  # type: ignore[misc]
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture  # type: ignore[misc]
def store(ledger: InMemoryLedger, clock: FakeClock) -> SnapshotStore:
    books = InMemoryFiscalBooks(ledger)
    books.add({"id": "b1", "bookName": "Livro Teste"})
    ledger.seed("b1", LEDGER)
    return SnapshotStore(ledger, books, clock=clock, io_timeout=None)


def test_create_captures_value_copies(store: SnapshotStore, ledger: InMemoryLedger) -> None:
    snap = store.create("b1", name="Jan", tags=["Monthly-Close"])

    ledger.upsert("b1", {"id": "t1", "transactionName": "Venda", "transactionValue": "999,00"})
    ledger.remove("b1", "t2")

    stored = store.get(snap.id)
    assert [tx.transaction_value for tx in stored.captured_transactions] == ["100,00", "40,00"]
    assert stored.statistics.transaction_count == 2
    assert str(stored.statistics.net_amount) == "60.00"
    assert stored.tags == ("monthly-close",)
    assert stored.creation_source is CreationSource.MANUAL


def test_create_defaults_name_and_checks_book(store: SnapshotStore) -> None:
    snap = store.create("b1")
    assert snap.name == "Snapshot 2024-01-10"
    with pytest.raises(NotFoundError):
        store.create("missing")


def test_create_rejects_malformed_tags_without_side_effects(store: SnapshotStore) -> None:
    with pytest.raises(ValidationError):
        store.create("b1", tags=["ok", "a,b"])
    assert store.count("b1") == 0
    assert store.revision == 0


def test_list_is_newest_first_with_tag_filter_and_pagination(
    store: SnapshotStore, clock: FakeClock
) -> None:
    a = store.create("b1", name="a", tags=["audit-ready"])
    clock.advance(days=1)
    b = store.create("b1", name="b", tags=["backup"])
    clock.advance(days=1)
    c = store.create("b1", name="c", tags=["backup", "review"])

    assert [s.id for s in store.list("b1")] == [c.id, b.id, a.id]
    assert [s.id for s in store.list("b1", tags=["backup"])] == [c.id, b.id]
    assert [s.id for s in store.list("b1", tags=["audit-ready", "review"])] == [c.id, a.id]
    assert [s.id for s in store.list("b1", limit=1, skip=1)] == [b.id]
    assert store.count("b1", tags=["backup"]) == 2
    assert store.list("other") == []


def test_equal_timestamps_keep_creation_order(store: SnapshotStore) -> None:
    first = store.create("b1", name="first")
    second = store.create("b1", name="second")
    assert [s.id for s in store.list("b1")] == [second.id, first.id]


def test_get_transactions_paginates(store: SnapshotStore) -> None:
    snap = store.create("b1")
    assert [t.id for t in store.get_transactions(snap.id, limit=1)] == ["t1"]
    assert [t.id for t in store.get_transactions(snap.id, skip=1)] == ["t2"]


def test_returned_snapshots_do_not_alias_stored_records(
    store: SnapshotStore, ledger: InMemoryLedger
) -> None:
    ledger.seed("b1", [{"id": "t1", "transactionValue": "10,00", "labels": ["a"]}])
    snap = store.create("b1", include_metadata=True)

    leaked = store.get(snap.id)
    extra = leaked.captured_transactions[0].model_extra
    assert extra is not None
    extra["labels"].append("tampered")
    assert leaked.fiscal_book_state is not None
    leaked.fiscal_book_state["status"] = "Fechado"
    page = store.get_transactions(snap.id)
    assert page[0].model_extra is not None
    page[0].model_extra["labels"].append("again")
    listed = store.list("b1")[0]
    assert listed.fiscal_book_state is not None
    listed.fiscal_book_state["bookName"] = "Outro"

    stored = store.get(snap.id)
    assert stored.captured_transactions[0].model_extra == {"labels": ["a"]}
    assert stored.fiscal_book_state is not None
    assert stored.fiscal_book_state["status"] == "Aberto"
    assert stored.fiscal_book_state["bookName"] == "Livro Teste"


def test_protected_snapshot_cannot_be_deleted(store: SnapshotStore) -> None:
    snap = store.create("b1")
    store.toggle_protection(snap.id, True)

    with pytest.raises(ProtectedError):
        store.delete(snap.id)
    assert store.get(snap.id).is_protected

    store.toggle_protection(snap.id, False)
    store.delete(snap.id)
    with pytest.raises(NotFoundError):
        store.get(snap.id)


def test_toggle_protection_is_idempotent(store: SnapshotStore) -> None:
    snap = store.create("b1")
    once = store.toggle_protection(snap.id, True)
    rev = store.revision
    twice = store.toggle_protection(snap.id, True)
    assert once == twice
    assert store.revision == rev


def test_update_tags_replaces_and_is_idempotent(store: SnapshotStore, clock: FakeClock) -> None:
    snap = store.create("b1", tags=["a", "b"])
    clock.advance(minutes=5)
    first = store.update_tags(snap.id, ["C", "c", " d "])
    assert first.tags == ("c", "d")
    assert first.updated_at == clock.now

    clock.advance(minutes=5)
    second = store.update_tags(snap.id, ["c", "d"])
    assert second == first

    with pytest.raises(ValidationError):
        store.update_tags(snap.id, [""])
    assert store.get(snap.id).tags == ("c", "d")


def test_annotations_append(store: SnapshotStore) -> None:
    snap = store.create("b1")
    store.add_annotation(snap.id, "checked by accounting", "ana")
    updated = store.add_annotation(snap.id, "second note")
    assert [n.content for n in updated.annotations] == ["checked by accounting", "second note"]
    assert updated.annotations[0].created_by == "ana"
    assert updated.captured_transactions == snap.captured_transactions

    with pytest.raises(ValidationError):
        store.add_annotation(snap.id, "   ")


def test_transaction_annotations(store: SnapshotStore) -> None:
    snap = store.create("b1")
    updated = store.add_transaction_annotation(snap.id, "t2", "rent doubled")
    assert [n.content for n in updated.transaction_annotations["t2"]] == ["rent doubled"]

    with pytest.raises(NotFoundError):
        store.add_transaction_annotation(snap.id, "t9", "nope")


def test_metadata_capture(store: SnapshotStore) -> None:
    plain = store.create("b1")
    with_meta = store.create("b1", include_metadata=True)
    assert plain.fiscal_book_state is None
    assert with_meta.fiscal_book_state is not None
    assert with_meta.fiscal_book_state["bookName"] == "Livro Teste"


def test_persistence_round_trip(ledger: InMemoryLedger, clock: FakeClock, tmp_path: Path) -> None:
    books = InMemoryFiscalBooks(ledger)
    books.add({"id": "b1", "bookName": "Livro Teste"})
    ledger.seed("b1", LEDGER)
    data_dir = tmp_path / "snapshots"

    first = SnapshotStore(ledger, books, data_dir=data_dir, clock=clock, io_timeout=None)
    keep = first.create("b1", name="keep", tags=["backup"])
    first.toggle_protection(keep.id, True)
    gone = first.create("b1", name="gone")
    first.delete(gone.id)

    files = sorted(p.name for p in data_dir.glob("*.json"))
    assert files == [f"{keep.id}.json"]
    with (data_dir / f"{keep.id}.json").open(encoding="utf-8") as f:
        assert json.load(f)["isProtected"] is True

    reloaded = SnapshotStore(ledger, books, data_dir=data_dir, clock=clock, io_timeout=None)
    assert reloaded.get(keep.id) == first.get(keep.id)
    assert reloaded.count("b1") == 1


def test_unreadable_files_are_skipped(tmp_path: Path) -> None:
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    assert list(SnapshotWriter(tmp_path).load_all()) == []
