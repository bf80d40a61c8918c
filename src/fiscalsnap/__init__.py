"""fiscalsnap: point-in-time snapshots, comparison and rollback for fiscal books.

The package is organised in three layers:

- ``fiscalsnap.core``: contracts, errors, settings, collaborators and the snapshot store.
- ``fiscalsnap.services``: comparator, rollback coordinator, retention scheduler,
  exporter and the :class:`~fiscalsnap.services.facade.SnapshotService` facade.
- ``fiscalsnap.api`` / ``fiscalsnap.cli``: thin HTTP and terminal adapters.
"""

from __future__ import annotations

__all__ = ["__version__"]
__version__ = "0.3.0"
