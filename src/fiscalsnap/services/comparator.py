"""
Comparator: key-based diff between a snapshot and the live ledger.

Algorithm
---------
1. Index both sides by transaction ``id`` (the persisted identity key).
2. Keys only in the ledger are *added*, keys only in the snapshot *removed*.
3. Keys on both sides are compared field by field over the union of their
   fields. Two values are equal when their JSON-mode representations are
   equal; an absent field equals an explicit ``null``. Any difference yields
   a :class:`FieldChange` whose old/new values are display strings.
4. Statistics are recomputed for both sides; ``differences`` is current minus
   snapshot with the sign preserved.

Display strings are locale-neutral: absent -> ``(empty)``, numbers and
decimals -> ``str()``, booleans -> ``true``/``false``, containers -> compact
JSON with sorted keys.

Comparison is read-only: it never takes a book lock and never writes.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from ..core.contracts.comparison import (
    ComparisonResult,
    ComparisonSummary,
    DiffCounts,
    DiffEntry,
    FieldChange,
    SummaryDifferences,
)
from ..core.contracts.snapshot import Snapshot, SnapshotStatistics
from ..core.contracts.transaction import Transaction, TransactionLike, copy_transactions
from ..core.ledger import LedgerProvider, call_with_timeout
from ..core.store.memory import SnapshotStore

EMPTY_MARKER = "(empty)"


def display_value(value: Any) -> str:
    """Coerce a JSON-mode field value to its display string."""
    if value is None:
        return EMPTY_MARKER
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int | float):
        return str(value)
    return json.dumps(value, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def _field_order(old: dict[str, Any], new: dict[str, Any]) -> list[str]:
    declared = [
        field.alias or name
        for name, field in Transaction.model_fields.items()
        if name != "id"
    ]
    extras = sorted((set(old) | set(new)) - set(declared) - {"id"})
    return declared + extras


def diff_fields(old: Transaction, new: Transaction) -> list[FieldChange]:
    """Return the field-level changes from ``old`` to ``new`` (ids ignored)."""
    before = old.dump()
    after = new.dump()
    changes: list[FieldChange] = []
    for name in _field_order(before, after):
        a = before.get(name)
        b = after.get(name)
        if a == b:
            continue
        changes.append(
            FieldChange(field=name, old_value=display_value(a), new_value=display_value(b))
        )
    return changes


def compare_transactions(
    snapshot: Snapshot, current: Sequence[TransactionLike]
) -> ComparisonResult:
    """Pure comparison of ``snapshot`` against ``current`` ledger rows."""
    live = copy_transactions(current)
    captured = {tx.id: tx for tx in snapshot.captured_transactions}
    live_ids = {tx.id for tx in live}

    added: list[DiffEntry] = []
    modified: list[DiffEntry] = []
    unchanged: list[DiffEntry] = []
    for tx in live:
        before = captured.get(tx.id)
        if before is None:
            added.append(DiffEntry(id=tx.id, transaction=tx))
            continue
        changes = diff_fields(before, tx)
        if changes:
            modified.append(DiffEntry(id=tx.id, transaction=tx, previous=before, changes=changes))
        else:
            unchanged.append(DiffEntry(id=tx.id, transaction=tx))

    removed = [
        DiffEntry(id=tx.id, transaction=tx)
        for tx in snapshot.captured_transactions
        if tx.id not in live_ids
    ]

    snapshot_stats = snapshot.statistics
    current_stats = SnapshotStatistics.from_transactions(live)
    summary = ComparisonSummary(
        snapshot_stats=snapshot_stats,
        current_stats=current_stats,
        differences=SummaryDifferences(
            transaction_count_diff=current_stats.transaction_count
            - snapshot_stats.transaction_count,
            net_amount_diff=current_stats.net_amount - snapshot_stats.net_amount,
        ),
    )

    return ComparisonResult(
        snapshot_id=snapshot.id,
        snapshot_name=snapshot.name,
        snapshot_date=snapshot.created_at,
        fiscal_book_id=snapshot.fiscal_book_id,
        added=added,
        removed=removed,
        modified=modified,
        unchanged=unchanged,
        counts=DiffCounts(
            added=len(added),
            removed=len(removed),
            modified=len(modified),
            unchanged=len(unchanged),
        ),
        summary=summary,
    )


class Comparator:
    """Loads a snapshot and the live ledger, then delegates to :func:`compare_transactions`."""

    def __init__(self, store: SnapshotStore, ledger: LedgerProvider) -> None:
        self.store = store
        self.ledger = ledger

    def compare(self, snapshot_id: str, *, timeout: float | None = None) -> ComparisonResult:
        """
        Diff snapshot ``snapshot_id`` against its fiscal book's live ledger.

        Raises
        ------
        NotFoundError
            If the snapshot (or its fiscal book's ledger) no longer exists.
        OperationTimeoutError
            If the ledger read exceeds ``timeout``.
        """
        snapshot = self.store.get(snapshot_id)
        bound = self.store.io_timeout if timeout is None else timeout
        current = call_with_timeout(self.ledger.get_transactions, bound, snapshot.fiscal_book_id)
        return compare_transactions(snapshot, current)


__all__ = [
    "Comparator",
    "EMPTY_MARKER",
    "compare_transactions",
    "diff_fields",
    "display_value",
]
