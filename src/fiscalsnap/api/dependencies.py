"""
Process-wide SnapshotService for the HTTP adapter.

The service is created lazily on first access (usually from the app lifespan)
over the in-memory ledger and fiscal-book collaborators, with persistence and
timeouts taken from :func:`~fiscalsnap.core.settings.load_settings`.

Note on Persistence
-------------------
Snapshots survive restarts only when `FISCALSNAP_DATA_DIR` is set. Schedules
and the in-memory ledger are volatile; a deployment plugs its own providers in
with :func:`set_snapshot_service`.
"""

from __future__ import annotations

from typing import ClassVar

from fiscalsnap.services.facade import SnapshotService


class ServiceHolder:
    """Holds the singleton used by the routers."""

    _instance: ClassVar[SnapshotService | None] = None

    @classmethod
    def get_instance(cls) -> SnapshotService:
        """Accessor for the global singleton instance."""
        if cls._instance is None:
            cls._instance = SnapshotService.in_memory()
        return cls._instance

    @classmethod
    def reset(cls, service: SnapshotService | None = None) -> None:
        """Replace (or drop, when ``service`` is None) the singleton."""
        cls._instance = service


# FastAPI dependency
def get_snapshot_service() -> SnapshotService:
    return ServiceHolder.get_instance()


def set_snapshot_service(service: SnapshotService | None) -> None:
    ServiceHolder.reset(service)


__all__ = ["ServiceHolder", "get_snapshot_service", "set_snapshot_service"]
