"""Error taxonomy for the snapshot subsystem.

Every failure a caller can act on is a :class:`SnapshotError`. The subclasses
map one-to-one onto the outcomes a client must distinguish:

- :class:`NotFoundError`: snapshot, fiscal book or transaction is gone.
- :class:`ProtectedError`: deletion/pruning of a protected snapshot.
- :class:`ConfirmationMismatchError`: rollback confirmation text is wrong.
- :class:`ValidationError`: empty annotation, malformed tag, bad schedule field.
- :class:`UnsupportedFormatError`: recognised export format with no renderer.
- :class:`OperationTimeoutError`: an I/O bound was exceeded.
- :class:`CollaboratorError`: a ledger or fiscal-book provider raised a
  non-domain exception; the original is kept as ``__cause__``.

Only the timeout is ``retryable``. The HTTP adapter reads ``status_code`` and
``retryable`` to build its error responses.
"""

from __future__ import annotations


class SnapshotError(Exception):
    """Base class for all snapshot subsystem failures."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(SnapshotError):
    """A snapshot, fiscal book or transaction reference no longer exists."""

    status_code = 404


class ProtectedError(SnapshotError):
    """Attempted deletion or pruning of a protected snapshot."""

    status_code = 409


class ConfirmationMismatchError(SnapshotError):
    """Rollback confirmation text did not match the fiscal book name."""

    status_code = 422


class ValidationError(SnapshotError):
    """Input rejected before any state was touched."""

    status_code = 400


class UnsupportedFormatError(SnapshotError):
    """Export format is recognised but has no renderer."""

    status_code = 415


class OperationTimeoutError(SnapshotError, TimeoutError):
    """A ledger call or lock acquisition exceeded its bound. Safe to retry."""

    status_code = 504
    retryable = True


class CollaboratorError(SnapshotError):
    """A ledger or fiscal-book provider failed with a non-domain exception."""

    status_code = 502

    @classmethod
    def wrap(cls, exc: BaseException) -> SnapshotError:
        """Return ``exc`` unchanged if it is a domain error, else wrap it."""
        if isinstance(exc, SnapshotError):
            return exc
        wrapped = cls(f"{type(exc).__name__}: {exc}")
        wrapped.__cause__ = exc
        return wrapped


__all__ = [
    "SnapshotError",
    "NotFoundError",
    "ProtectedError",
    "ConfirmationMismatchError",
    "ValidationError",
    "UnsupportedFormatError",
    "OperationTimeoutError",
    "CollaboratorError",
]
