"""Shared base model and small types for all fiscalsnap contracts.

Naming
------
Python attributes are snake_case; the JSON wire format used by the admin UI is
camelCase (`fiscalBookId`, `isProtected`, ...). `ContractModel` wires a camel
alias generator so both spellings validate, and `dump()` always emits aliases.

Money
-----
`Money` is a `Decimal`. Amount strings from the ledger use the Brazilian
format (`"1.234,56"`, `"R$ 12,50"`); :func:`parse_amount` accepts those as
well as plain numbers.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Money = Decimal

_NON_NUMERIC = re.compile(r"[^\d,.\-]")


def utcnow() -> datetime:
    """Return the current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def parse_amount(value: Any) -> Decimal:
    """Parse a ledger amount into a `Decimal`.

    Accepts `Decimal`, `int`, `float`, `None` (-> 0) and strings in either
    pt-BR (`"1.234,56"`) or dotted (`"1234.56"`) notation. Unparseable input
    yields ``Decimal("0")``.
    """
    if value is None or isinstance(value, bool):
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int | float):
        return Decimal(str(value))

    text = _NON_NUMERIC.sub("", str(value))
    if "," in text:
        # pt-BR: dots are thousand separators, comma is the decimal mark
        text = text.replace(".", "").replace(",", ".")
    try:
        return Decimal(text) if text not in ("", "-", ".") else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


class ContractModel(BaseModel):
    """Base for every contract: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def dump(self) -> dict[str, Any]:
        """Return a JSON-safe dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)


__all__ = ["ContractModel", "Money", "parse_amount", "utcnow"]
