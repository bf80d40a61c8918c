"""
Retention Scheduler: automatic snapshots and retention pruning.

Responsibilities
----------------
- **Registry**: one :class:`ScheduleConfig` per fiscal book (get / upsert).
- **Evaluate**: decide whether a weekly or monthly schedule is due today.
- **Trigger**: create a ``scheduled`` snapshot tagged with ``autoTags``.
- **Prune**: delete the oldest unprotected scheduled snapshots until at most
  ``retentionCount`` remain. Protected scheduled snapshots are neither counted
  nor deleted.
- **Loop**: :class:`SchedulerLoop` calls :meth:`RetentionScheduler.tick` on a
  daemon thread at a fixed interval.

``before-status-change`` schedules are never due on a timer; the fiscal-book
collaborator calls :meth:`RetentionScheduler.trigger_before_status_change`
right before committing a status transition.

Every evaluation, trigger and prune for a book runs under that book's lock,
the same one manual store operations take.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from ..core.contracts.schedule import Frequency, ScheduleConfig, sunday_based_weekday
from ..core.contracts.snapshot import CreationSource, Snapshot
from ..core.errors import CollaboratorError, NotFoundError, SnapshotError
from ..core.result import Result, err, ok
from ..core.settings import get_logger
from ..core.store.memory import SnapshotStore

logger = get_logger(__name__)


class ScheduleRegistry:
    """Thread-safe mapping of fiscal book id -> schedule config."""

    def __init__(self) -> None:
        self._configs: dict[str, ScheduleConfig] = {}
        self._lock = threading.Lock()

    def get(self, fiscal_book_id: str) -> ScheduleConfig | None:
        with self._lock:
            return self._configs.get(fiscal_book_id)

    def upsert(self, fiscal_book_id: str, config: ScheduleConfig) -> ScheduleConfig:
        with self._lock:
            self._configs[fiscal_book_id] = config
        return config

    def enabled(self) -> list[tuple[str, ScheduleConfig]]:
        with self._lock:
            return [(k, v) for k, v in self._configs.items() if v.enabled]


@dataclass
class TickReport:
    """What one tick did for one fiscal book."""

    fiscal_book_id: str
    created: Snapshot | None = None
    pruned: list[str] = field(default_factory=list)


def _week_start(day: date) -> date:
    """Sunday that opens the calendar week containing ``day``."""
    return day - timedelta(days=sunday_based_weekday(day))


def already_taken(config: ScheduleConfig, automatic: list[Snapshot], today: date) -> bool:
    """Whether an automatic snapshot already exists for ``today``'s period."""
    for snap in automatic:
        taken = snap.created_at.date()
        if config.frequency is Frequency.WEEKLY and _week_start(taken) == _week_start(today):
            return True
        if config.frequency is Frequency.MONTHLY and (taken.year, taken.month) == (
            today.year,
            today.month,
        ):
            return True
    return False


class RetentionScheduler:
    """Evaluates schedules and applies retention for every fiscal book."""

    def __init__(self, store: SnapshotStore, registry: ScheduleRegistry | None = None) -> None:
        self.store = store
        self.registry = registry if registry is not None else ScheduleRegistry()

    # ------------------------------- evaluation -----------------------------

    def is_due(self, fiscal_book_id: str, config: ScheduleConfig, now: datetime) -> bool:
        if not config.enabled or config.frequency is Frequency.BEFORE_STATUS_CHANGE:
            return False
        today = now.date()
        if not config.is_due_day(today):
            return False
        return not already_taken(config, self.store.automatic(fiscal_book_id), today)

    def tick(self, now: datetime | None = None) -> list[Result[TickReport, SnapshotError]]:
        """Evaluate every enabled schedule once.

        A failure for one fiscal book is logged and reported as ``Err`` without
        stopping the others. Non-domain exceptions are wrapped in
        ``CollaboratorError``.
        """
        moment = now or self.store.clock()
        results: list[Result[TickReport, SnapshotError]] = []
        for book_id, _config in self.registry.enabled():
            try:
                report = self._evaluate(book_id, moment)
            except Exception as exc:
                error = CollaboratorError.wrap(exc)
                logger.error("scheduled snapshot for %s failed: %s", book_id, error)
                results.append(err(error))
                continue
            if report is not None:
                results.append(ok(report))
        return results

    def _evaluate(self, fiscal_book_id: str, now: datetime) -> TickReport | None:
        with self.store.locks.hold(fiscal_book_id, self.store.io_timeout):
            # Re-read under the lock; the config may have been updated meanwhile.
            config = self.registry.get(fiscal_book_id)
            if config is None or not self.is_due(fiscal_book_id, config, now):
                return None
            return self._trigger(fiscal_book_id, config)

    # ------------------------------- triggers -------------------------------

    def trigger_before_status_change(self, fiscal_book_id: str) -> TickReport | None:
        """Entry point for the fiscal-book status-change hook.

        Creates a snapshot only when the book has an enabled
        ``before-status-change`` schedule; otherwise does nothing.
        """
        config = self.registry.get(fiscal_book_id)
        if (
            config is None
            or not config.enabled
            or config.frequency is not Frequency.BEFORE_STATUS_CHANGE
        ):
            return None
        with self.store.locks.hold(fiscal_book_id, self.store.io_timeout):
            return self._trigger(fiscal_book_id, config)

    def status_hook(self, fiscal_book_id: str, old_status: str, new_status: str) -> None:
        """Adapter matching the fiscal-book collaborator's hook signature."""
        logger.info(
            "status change %s -> %s on fiscal book %s", old_status, new_status, fiscal_book_id
        )
        self.trigger_before_status_change(fiscal_book_id)

    def _trigger(self, fiscal_book_id: str, config: ScheduleConfig) -> TickReport:
        moment = self.store.clock()
        snap = self.store.create(
            fiscal_book_id,
            name=f"Automatic snapshot {moment.date().isoformat()}",
            tags=config.auto_tags,
            creation_source=CreationSource.SCHEDULED,
        )
        pruned = self.prune(fiscal_book_id, config.retention_count)
        return TickReport(fiscal_book_id=fiscal_book_id, created=snap, pruned=pruned)

    # ------------------------------- retention ------------------------------

    def prune(self, fiscal_book_id: str, retention_count: int) -> list[str]:
        """Delete the oldest unprotected scheduled snapshots beyond ``retention_count``.

        Returns the ids that were deleted, oldest first.
        """
        deleted: list[str] = []
        with self.store.locks.hold(fiscal_book_id, self.store.io_timeout):
            candidates = [s for s in self.store.automatic(fiscal_book_id) if not s.is_protected]
            excess = len(candidates) - retention_count
            for snap in candidates[: max(excess, 0)]:
                try:
                    self.store.delete(snap.id)
                except NotFoundError:
                    continue
                deleted.append(snap.id)
        if deleted:
            logger.info("pruned %d automatic snapshots of %s", len(deleted), fiscal_book_id)
        return deleted


class SchedulerLoop:
    """Background thread calling :meth:`RetentionScheduler.tick` every ``interval`` seconds.

    The loop never raises; unexpected errors are logged and the next tick runs
    as usual.
    """

    def __init__(self, scheduler: RetentionScheduler, interval: float) -> None:
        self.scheduler = scheduler
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="fiscalsnap-scheduler", daemon=True
        )
        self._thread.start()
        logger.info("scheduler loop started (every %ss)", self.interval)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.scheduler.tick()
            except Exception:
                logger.exception("scheduler tick crashed")
            self._stop.wait(self.interval)


__all__ = [
    "RetentionScheduler",
    "ScheduleRegistry",
    "SchedulerLoop",
    "TickReport",
    "already_taken",
]
