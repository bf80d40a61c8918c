"""
Request and response bodies of the HTTP adapter.

Domain contracts (Snapshot, ComparisonResult, ScheduleConfig, ...) are
returned as-is through their camelCase dumps; only the shapes that exist
purely at the HTTP boundary live here.
"""

from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field

from fiscalsnap.core.contracts.base import ContractModel
from fiscalsnap.core.contracts.rollback import RollbackOptions


class CreateSnapshotRequest(ContractModel):
    name: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    include_metadata: bool = False


class TagsRequest(ContractModel):
    tags: list[str]


class ProtectionRequest(ContractModel):
    is_protected: bool


class AnnotationRequest(ContractModel):
    content: str
    created_by: str = "user"


class RollbackRequest(RollbackOptions):
    pass


class CloneRequest(ContractModel):
    """Overrides for the new fiscal book; unknown keys are passed through."""

    model_config = ConfigDict(extra="allow")

    book_name: str | None = None
    book_type: str | None = None
    book_period: str | None = None
    reference: str | None = None
    notes: str | None = None

    def overrides(self) -> dict[str, Any]:
        return {k: v for k, v in self.dump().items() if v is not None}


class SnapshotPage(ContractModel):
    """List envelope: one page plus the unpaginated total."""

    snapshots: list[dict[str, Any]]
    total: int
    limit: int | None = None
    skip: int = 0


class ErrorBody(ContractModel):
    """Body of every error response."""

    error: str
    message: str
    detail: str | None = None
    retryable: bool = False


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    code: {"model": ErrorBody} for code in (400, 404, 409, 415, 422, 502, 504)
}


__all__ = [
    "ERROR_RESPONSES",
    "AnnotationRequest",
    "CloneRequest",
    "CreateSnapshotRequest",
    "ErrorBody",
    "ProtectionRequest",
    "RollbackRequest",
    "SnapshotPage",
    "TagsRequest",
]
