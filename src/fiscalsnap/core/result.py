"""Lightweight, typed Result container for explicit success/failure returns.

Motivation
----------
Multi-step operations such as a rollback (confirm -> backup -> restore) or a
scheduler tick over many fiscal books report *what happened* rather than
unwinding the stack on the first failure. This module provides a minimal
`Result[T, E]` with:
- `Ok(value)` / `Err(error)` variants,
- helpers: `unwrap`, `unwrap_err`, `raise_if_err`.

Example
-------
>>> from fiscalsnap.core.result import ok, err, Result
>>> def parse_count(x: str) -> Result[int, str]:
...     return ok(int(x)) if x.isdigit() else err("not a count")
>>> parse_count("12").unwrap()
12
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, cast

T = TypeVar("T")
E = TypeVar("E")


class Result(Generic[T, E]):
    """Sum type representing either success (`Ok[T]`) or failure (`Err[E]`)."""

    # ----- Introspection -----------------------------------------------------
    def is_ok(self) -> bool:
        """Return ``True`` if this is an :class:`Ok` value."""
        return isinstance(self, Ok)

    def is_err(self) -> bool:
        """Return ``True`` if this is an :class:`Err` value."""
        return isinstance(self, Err)

    # ----- Unwraps -----------------------------------------------------------
    def unwrap(self) -> T:
        """Return the inner value if ``Ok``.

        On ``Err`` the error is re-raised when it is an exception, otherwise a
        :class:`RuntimeError` describing it is raised.
        """
        if isinstance(self, Ok):
            return cast(Ok[T, E], self).value
        self.raise_if_err()
        raise RuntimeError(f"Attempted to unwrap Err: {self!r}")

    def unwrap_err(self) -> E:
        """Return the error value if ``Err``, else raise."""
        if isinstance(self, Err):
            return cast(Err[T, E], self).error
        raise RuntimeError(f"Attempted to unwrap_err on Ok: {self!r}")

    def raise_if_err(self) -> None:
        """Raise the wrapped error if this is an ``Err`` holding an exception."""
        if isinstance(self, Err):
            error = cast(Err[T, E], self).error
            if isinstance(error, BaseException):
                raise error

    # ----- Dunder helpers ----------------------------------------------------
    def __repr__(self) -> str:  # pragma: no cover - trivial representation
        if isinstance(self, Ok):
            return f"Ok({cast(Ok[T, E], self).value!r})"
        if isinstance(self, Err):
            return f"Err({cast(Err[T, E], self).error!r})"
        return "Result(?)"


@dataclass(frozen=True)
class Ok(Result[T, E]):
    """Successful result wrapping a value of type ``T``."""

    value: T


@dataclass(frozen=True)
class Err(Result[T, E]):
    """Failed result wrapping an error payload of type ``E``."""

    error: E


# ----- Convenience constructors ----------------------------------------------
def ok(value: T) -> Result[T, E]:
    """Construct :class:`Ok` with better type inference at call sites."""
    return Ok(value)


def err(error: E) -> Result[T, E]:
    """Construct :class:`Err` with better type inference at call sites."""
    return Err(error)


__all__ = ["Result", "Ok", "Err", "ok", "err"]
