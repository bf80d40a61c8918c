from __future__ import annotations

from .comparator import Comparator, compare_transactions
from .exporter import ExportArtifact, ExportFormat, export
from .facade import SnapshotService
from .rollback import RollbackCoordinator
from .scheduler import RetentionScheduler, ScheduleRegistry, SchedulerLoop

__all__ = [
    "Comparator",
    "compare_transactions",
    "ExportArtifact",
    "ExportFormat",
    "export",
    "SnapshotService",
    "RollbackCoordinator",
    "RetentionScheduler",
    "ScheduleRegistry",
    "SchedulerLoop",
]
