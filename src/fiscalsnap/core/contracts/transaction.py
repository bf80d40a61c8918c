"""Transaction contract: one record of a fiscal book's ledger.

The known fields mirror the admin application's transaction form. Ledgers may
carry more; those are kept as pydantic extras so that a snapshot preserves the
record verbatim and the comparator still sees every field.

Records are frozen. A snapshot holds its own copies (see :func:`copy_transactions`),
never references into the live ledger.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import ConfigDict, Field, field_validator

from .base import ContractModel, parse_amount


class TransactionItem(ContractModel):
    """A line item inside a transaction (e.g. one product of a purchase)."""

    model_config = ConfigDict(frozen=True, extra="allow")

    item_name: str = ""
    item_description: str = ""
    item_value: str | float | int | Decimal = "0,0"
    item_units: int = 1


class Transaction(ContractModel):
    """A ledger transaction keyed by its persisted `id`."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str = Field(min_length=1, description="Persisted transaction id (comparison key).")
    transaction_date: datetime | str | None = None
    transaction_period: str | None = None
    transaction_source: str | None = None
    transaction_value: str | float | int | Decimal | None = None
    transaction_name: str | None = None
    transaction_description: str | None = None
    transaction_fiscal_note: str | None = None
    transaction_id: str | None = Field(default=None, description="Id at the transaction source.")
    transaction_status: str | None = None
    transaction_location: str | None = None
    transaction_type: str | None = Field(default=None, description="'credit' or 'debit'.")
    transaction_category: str | None = None
    freight_value: str | float | int | Decimal | None = None
    payment_method: str | None = None
    items: tuple[TransactionItem, ...] = ()
    company_name: str | None = None
    company_seller_name: str | None = None
    company_cnpj: str | None = None
    fiscal_book_id: str | None = None
    fiscal_book_name: str | None = None
    fiscal_book_year: int | str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v: Any) -> Any:
        """Numeric ids from the ledger are keyed by their text form."""
        return str(v) if isinstance(v, int) and not isinstance(v, bool) else v

    @property
    def amount(self) -> Decimal:
        """Parsed `transactionValue`."""
        return parse_amount(self.transaction_value)

    @property
    def is_income(self) -> bool:
        """Credits are income; untyped records count as income when positive."""
        kind = (self.transaction_type or "").strip().lower()
        if kind == "credit":
            return True
        if kind == "debit":
            return False
        return self.amount >= 0


TransactionLike = Transaction | Mapping[str, Any]


def copy_transactions(records: Iterable[TransactionLike]) -> list[Transaction]:
    """Return independent value copies of ``records``.

    Both models and plain mappings are accepted. Each record is dumped to its
    JSON form and re-validated, so nested lists/dicts are never shared with
    the source collection.
    """
    copies: list[Transaction] = []
    for record in records:
        payload = record.dump() if isinstance(record, Transaction) else dict(record)
        copies.append(Transaction.model_validate(_detach(payload)))
    return copies


def _detach(value: Any) -> Any:
    """Recursively rebuild containers so nothing is shared with ``value``."""
    if isinstance(value, Mapping):
        return {str(k): _detach(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_detach(v) for v in value]
    if isinstance(value, ContractModel):
        return _detach(value.dump())
    return value


__all__ = ["Transaction", "TransactionItem", "TransactionLike", "copy_transactions"]
