"""Rollback request/outcome contracts and the per-attempt state machine."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from .base import ContractModel


class RollbackState(str, Enum):
    """Idle -> Confirming -> (BackingUp) -> Restoring -> Done | Failed."""

    IDLE = "idle"
    CONFIRMING = "confirming"
    BACKING_UP = "backing-up"
    RESTORING = "restoring"
    DONE = "done"
    FAILED = "failed"


class RollbackOptions(ContractModel):
    confirmation: str = Field(description="Fiscal book name typed by the user.")
    create_pre_rollback_snapshot: bool = True


class RollbackOutcome(ContractModel):
    snapshot_id: str
    fiscal_book_id: str
    restored_transaction_count: int
    backup_snapshot_id: str | None = None
    metadata_restored: bool = False
    state: RollbackState = RollbackState.DONE


__all__ = ["RollbackOptions", "RollbackOutcome", "RollbackState"]
