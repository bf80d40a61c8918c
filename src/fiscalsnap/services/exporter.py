"""
Export/Serializer: render snapshots and comparisons as portable files.

Formats
-------
- ``json``: the full camelCase structure, UTF-8, indented.
- ``csv``: one row per transaction under a fixed header. Snapshots export
  their captured transactions; comparisons export the added, removed and
  modified transactions prefixed with their diff category.
- ``pdf``: recognised but not implemented; raises ``UnsupportedFormatError``.

Filenames follow ``snapshot-<name>-<ISODate>.<ext>`` (``comparison-...`` for
comparisons), falling back to ``snapshot-export.<ext>`` when there is no name.
"""

from __future__ import annotations

import csv
import io
import json
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from ..core.contracts.base import utcnow
from ..core.contracts.comparison import ComparisonResult, DiffCategory
from ..core.contracts.snapshot import Snapshot
from ..core.contracts.transaction import Transaction
from ..core.errors import UnsupportedFormatError, ValidationError
from .comparator import display_value

SNAPSHOT_CSV_COLUMNS: tuple[str, ...] = (
    "id",
    "transactionDate",
    "transactionName",
    "transactionDescription",
    "transactionType",
    "transactionValue",
    "transactionCategory",
    "transactionStatus",
    "paymentMethod",
    "companyName",
)
COMPARISON_CSV_COLUMNS: tuple[str, ...] = ("diffCategory", *SNAPSHOT_CSV_COLUMNS, "changes")

_UNSAFE_FILENAME = re.compile(r"[\\/:*?\"<>|]+")


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    PDF = "pdf"

    @classmethod
    def parse(cls, value: str | ExportFormat) -> ExportFormat:
        if isinstance(value, ExportFormat):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError as exc:
            raise ValidationError(f"Unknown export format {value!r}") from exc


MEDIA_TYPES: dict[ExportFormat, str] = {
    ExportFormat.JSON: "application/json",
    ExportFormat.CSV: "text/csv",
    ExportFormat.PDF: "application/pdf",
}


@dataclass(frozen=True)
class ExportArtifact:
    """Rendered bytes plus the metadata a transport needs to serve them."""

    filename: str
    media_type: str
    content: bytes


Exportable = Snapshot | ComparisonResult


def export_filename(
    name: str | None, fmt: ExportFormat, *, prefix: str = "snapshot", on: date | None = None
) -> str:
    """Build ``<prefix>-<name>-<ISODate>.<ext>`` or the ``snapshot-export`` fallback."""
    clean = _UNSAFE_FILENAME.sub("-", (name or "").strip())
    if not clean:
        return f"snapshot-export.{fmt.value}"
    stamp = (on or date.today()).isoformat()
    return f"{prefix}-{clean}-{stamp}.{fmt.value}"


def _row(tx: Transaction) -> dict[str, str]:
    payload = tx.dump()
    return {
        col: "" if payload.get(col) is None else display_value(payload.get(col))
        for col in SNAPSHOT_CSV_COLUMNS
    }


def _render_csv(obj: Exportable) -> bytes:
    buffer = io.StringIO()
    if isinstance(obj, Snapshot):
        writer = csv.DictWriter(buffer, fieldnames=list(SNAPSHOT_CSV_COLUMNS))
        writer.writeheader()
        for tx in obj.captured_transactions:
            writer.writerow(_row(tx))
    else:
        writer = csv.DictWriter(buffer, fieldnames=list(COMPARISON_CSV_COLUMNS))
        writer.writeheader()
        for category, entry in obj.entries():
            row: dict[str, Any] = {"diffCategory": category.value, **_row(entry.transaction)}
            row["changes"] = (
                "; ".join(f"{c.field}: {c.old_value} -> {c.new_value}" for c in entry.changes)
                if category is DiffCategory.MODIFIED
                else ""
            )
            writer.writerow(row)
    return buffer.getvalue().encode("utf-8")


def render(
    obj: Exportable, fmt: str | ExportFormat, *, compared_at: datetime | None = None
) -> bytes:
    """Render a snapshot or comparison in the requested format.

    Comparison JSON carries a `comparedAt` stamp (``compared_at`` or now).

    Raises
    ------
    UnsupportedFormatError
        For ``pdf``.
    ValidationError
        For an unknown format string.
    """
    parsed = ExportFormat.parse(fmt)
    if parsed is ExportFormat.PDF:
        raise UnsupportedFormatError("PDF export is not available yet")
    if parsed is ExportFormat.JSON:
        payload = obj.dump()
        if isinstance(obj, ComparisonResult):
            payload["comparedAt"] = (compared_at or utcnow()).isoformat()
        return (json.dumps(payload, ensure_ascii=False, indent=2) + "\n").encode("utf-8")
    return _render_csv(obj)


def export(
    obj: Exportable,
    fmt: str | ExportFormat,
    *,
    on: date | None = None,
    compared_at: datetime | None = None,
) -> ExportArtifact:
    """Render ``obj`` and name the resulting file."""
    parsed = ExportFormat.parse(fmt)
    content = render(obj, parsed, compared_at=compared_at)
    if isinstance(obj, Snapshot):
        filename = export_filename(obj.name, parsed, on=on)
    else:
        filename = export_filename(obj.snapshot_name, parsed, prefix="comparison", on=on)
    return ExportArtifact(filename=filename, media_type=MEDIA_TYPES[parsed], content=content)


__all__ = [
    "COMPARISON_CSV_COLUMNS",
    "ExportArtifact",
    "ExportFormat",
    "SNAPSHOT_CSV_COLUMNS",
    "export",
    "export_filename",
    "render",
]
