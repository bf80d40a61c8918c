"""Disk-backed writer for snapshots.

This module persists each :class:`Snapshot` as one JSON file so that a
snapshot, once acknowledged, survives a crash of the host process.

- Directory:        `FISCALSNAP_DATA_DIR`, or an explicit ``base_dir``
- Filename pattern: `<snapshot id>.json`
- Content:          the camelCase JSON dump of the snapshot

Writes go to a temporary sibling file which is flushed, fsync'ed and then
renamed over the target, so a reader never observes a half-written snapshot.

Usage
-----
>>> writer = SnapshotWriter(Path("var/snapshots"))
>>> path = writer.write(snap)
>>> [s.id for s in writer.load_all()]
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterator
from pathlib import Path

from ..contracts.snapshot import Snapshot
from ..settings import get_logger

logger = get_logger(__name__)


class SnapshotWriter:
    """Persist snapshots to disk as JSON files."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir: Path = base_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, snapshot_id: str) -> Path:
        return self.base_dir / f"{snapshot_id}.json"

    def write(self, snap: Snapshot) -> Path:
        """Atomically write ``snap`` and return the file path."""
        path = self.path_for(snap.id)
        tmp = path.with_suffix(".json.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(snap.dump(), f, ensure_ascii=False, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except OSError:
            tmp.unlink(missing_ok=True)
            logger.error("failed to persist snapshot %s to %s", snap.id, path)
            raise
        return path

    def remove(self, snapshot_id: str) -> None:
        self.path_for(snapshot_id).unlink(missing_ok=True)

    def load_all(self) -> Iterator[Snapshot]:
        """Yield every persisted snapshot; unreadable files are skipped and logged."""
        for path in sorted(self.base_dir.glob("*.json")):
            try:
                with path.open("r", encoding="utf-8") as f:
                    yield Snapshot.model_validate(json.load(f))
            except (OSError, ValueError) as exc:
                logger.error("skipping unreadable snapshot file %s: %s", path, exc)


def read_snapshot_file(path: Path) -> Snapshot:
    """Load a single exported/persisted snapshot JSON file."""
    with path.open("r", encoding="utf-8") as f:
        return Snapshot.model_validate(json.load(f))


__all__ = ["SnapshotWriter", "read_snapshot_file"]
