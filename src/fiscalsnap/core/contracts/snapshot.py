"""Snapshot contracts: the immutable capture of a fiscal book and its metadata.

Contract notes
--------------
- `Snapshot` is frozen. The store applies the three permitted mutations
  (tags, protection, annotations) by building a new instance with
  :meth:`Snapshot.with_changes`, which refuses to touch anything else.
- `captured_transactions`, `fiscal_book_id`, `created_at` and
  `creation_source` are fixed at creation.
- Tags are normalized by :func:`normalize_tags` both at creation and on update.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field

from ..errors import ValidationError
from .base import ContractModel, utcnow
from .transaction import Transaction

MAX_TAG_LENGTH = 50

MUTABLE_FIELDS = frozenset({"tags", "is_protected", "annotations", "transaction_annotations"})


class CreationSource(str, Enum):
    """Who created the snapshot."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    PRE_ROLLBACK = "pre-rollback"


class SnapshotStatistics(ContractModel):
    """Aggregates derived from a set of transactions."""

    model_config = ConfigDict(frozen=True)

    transaction_count: int = 0
    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net_amount: Decimal = Decimal("0")

    @classmethod
    def from_transactions(cls, transactions: Iterable[Transaction]) -> SnapshotStatistics:
        """Compute count, income, expenses (as a magnitude) and net amount."""
        count = 0
        income = Decimal("0")
        expenses = Decimal("0")
        for tx in transactions:
            count += 1
            if tx.is_income:
                income += abs(tx.amount)
            else:
                expenses += abs(tx.amount)
        return cls(
            transaction_count=count,
            total_income=income,
            total_expenses=expenses,
            net_amount=income - expenses,
        )


class Annotation(ContractModel):
    """One entry of an append-only annotation log."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(min_length=1)
    created_by: str = "user"
    created_at: datetime = Field(default_factory=utcnow)


class Snapshot(ContractModel):
    """Immutable, timestamped copy of a fiscal book's transactions."""

    model_config = ConfigDict(frozen=True)

    id: str
    fiscal_book_id: str
    name: str
    description: str | None = None
    tags: tuple[str, ...] = ()
    is_protected: bool = False
    creation_source: CreationSource = CreationSource.MANUAL
    captured_transactions: tuple[Transaction, ...] = ()
    statistics: SnapshotStatistics = Field(default_factory=SnapshotStatistics)
    annotations: tuple[Annotation, ...] = ()
    transaction_annotations: dict[str, tuple[Annotation, ...]] = Field(default_factory=dict)
    fiscal_book_state: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime | None = None

    @property
    def is_automatic(self) -> bool:
        """True for snapshots created by the retention scheduler."""
        return self.creation_source is CreationSource.SCHEDULED

    def transaction_ids(self) -> set[str]:
        """Identity keys of the captured transactions."""
        return {tx.id for tx in self.captured_transactions}

    def with_changes(self, *, at: datetime | None = None, **changes: Any) -> Snapshot:
        """Return a copy with the given mutable fields replaced.

        Raises
        ------
        ValueError
            If ``changes`` names a field outside the mutable set.
        """
        illegal = set(changes) - MUTABLE_FIELDS
        if illegal:
            raise ValueError(f"snapshot fields are immutable: {sorted(illegal)}")
        changes["updated_at"] = at or utcnow()
        return self.model_copy(update=changes)


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Trim, lowercase and de-duplicate ``tags`` keeping first occurrence.

    Raises
    ------
    ValidationError
        For a tag that is not a string, empty after trimming, longer than
        :data:`MAX_TAG_LENGTH`, or containing a comma.
    """
    if tags is None:
        return []
    if isinstance(tags, str):
        raise ValidationError("tags must be a list of strings, not a single string")

    normalized: list[str] = []
    for raw in tags:
        if not isinstance(raw, str):
            raise ValidationError(f"malformed tag {raw!r}: expected a string")
        tag = raw.strip().lower()
        if not tag:
            raise ValidationError("malformed tag: empty after trimming")
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(f"malformed tag {tag!r}: longer than {MAX_TAG_LENGTH} characters")
        if "," in tag:
            raise ValidationError(f"malformed tag {tag!r}: commas are not allowed")
        if tag not in normalized:
            normalized.append(tag)
    return normalized


def default_snapshot_name(created_at: datetime) -> str:
    """Date-stamped label used when no name is supplied."""
    return f"Snapshot {created_at.date().isoformat()}"


__all__ = [
    "Annotation",
    "CreationSource",
    "MAX_TAG_LENGTH",
    "Snapshot",
    "SnapshotStatistics",
    "default_snapshot_name",
    "normalize_tags",
]
