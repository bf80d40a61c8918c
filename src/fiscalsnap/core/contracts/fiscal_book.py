"""FiscalBook: the ledger owner as seen by this subsystem.

Only the fields the snapshot flows read or write are declared; anything else
the fiscal-book collaborator stores is carried as extras.
"""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict

from .base import ContractModel

# Metadata fields captured in a snapshot's `fiscalBookState` and restored on rollback.
METADATA_FIELDS: tuple[str, ...] = ("bookName", "bookType", "bookPeriod", "reference", "status", "notes")


class FiscalBook(ContractModel):
    model_config = ConfigDict(extra="allow")

    id: str
    book_name: str
    book_type: str = "Outros"
    book_period: str | None = None
    reference: str | None = None
    status: str = "Aberto"
    notes: str | None = None

    def metadata(self) -> dict[str, Any]:
        """Restorable metadata in wire (camelCase) form."""
        payload = self.dump()
        return {k: payload.get(k) for k in METADATA_FIELDS}


__all__ = ["FiscalBook", "METADATA_FIELDS"]
