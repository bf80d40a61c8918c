"""ComparisonResult: the four-way diff between a snapshot and the live ledger.

Never persisted; the comparator recomputes it on every request, and two runs
over an unchanged ledger produce equal results. The `comparedAt` stamp is only
added to exported comparison files.

`summary.differences` is *current minus snapshot*, sign preserved, so a
positive `netAmountDiff` means the ledger grew since the capture.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import Field

from .base import ContractModel
from .snapshot import SnapshotStatistics
from .transaction import Transaction


class DiffCategory(str, Enum):
    """Partition a transaction falls into after comparison."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


class FieldChange(ContractModel):
    """One differing field, both sides rendered as display strings."""

    field: str
    old_value: str
    new_value: str


class DiffEntry(ContractModel):
    """A transaction placed in one of the diff partitions.

    `transaction` is the side that exists (the ledger version for added,
    modified and unchanged entries; the snapshot version for removed ones).
    `previous` and `changes` are only populated for modified entries.
    """

    id: str
    transaction: Transaction
    previous: Transaction | None = None
    changes: list[FieldChange] = Field(default_factory=list)


class DiffCounts(ContractModel):
    """Cardinalities of the four partitions."""

    added: int = 0
    removed: int = 0
    modified: int = 0
    unchanged: int = 0

    @property
    def has_differences(self) -> bool:
        return bool(self.added or self.removed or self.modified)


class SummaryDifferences(ContractModel):
    """Signed deltas, current minus snapshot."""

    transaction_count_diff: int = 0
    net_amount_diff: Decimal = Decimal("0")


class ComparisonSummary(ContractModel):
    snapshot_stats: SnapshotStatistics
    current_stats: SnapshotStatistics
    differences: SummaryDifferences


class ComparisonResult(ContractModel):
    """Full comparison payload returned to callers."""

    snapshot_id: str
    snapshot_name: str
    snapshot_date: datetime
    fiscal_book_id: str
    added: list[DiffEntry] = Field(default_factory=list)
    removed: list[DiffEntry] = Field(default_factory=list)
    modified: list[DiffEntry] = Field(default_factory=list)
    unchanged: list[DiffEntry] = Field(default_factory=list)
    counts: DiffCounts = Field(default_factory=DiffCounts)
    summary: ComparisonSummary

    def entries(self) -> list[tuple[DiffCategory, DiffEntry]]:
        """Added, removed and modified entries tagged with their category."""
        tagged: list[tuple[DiffCategory, DiffEntry]] = []
        tagged.extend((DiffCategory.ADDED, e) for e in self.added)
        tagged.extend((DiffCategory.REMOVED, e) for e in self.removed)
        tagged.extend((DiffCategory.MODIFIED, e) for e in self.modified)
        return tagged


__all__ = [
    "ComparisonResult",
    "ComparisonSummary",
    "DiffCategory",
    "DiffCounts",
    "DiffEntry",
    "FieldChange",
    "SummaryDifferences",
]
