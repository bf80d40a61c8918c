"""Unit tests for the Retention Scheduler.

A hand-driven clock is injected into the store so every trigger happens on a
chosen calendar day. The tests call `tick()` directly; the background loop is
only exercised for start/stop.

Scenarios
---------
1. Monthly on day 31 with retention 2: three triggers leave two snapshots and
   the oldest one is pruned.
2. Protected automatic snapshots are neither counted nor pruned.
3. Weekly schedules use 0 = Sunday and fire once per calendar week.
4. Before-status-change schedules fire from the fiscal-book hook only.
5. A book whose ledger raises is reported as ``Err``; the next book still runs.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta

import pytest

from fiscalsnap.core.contracts.schedule import Frequency, ScheduleConfig
from fiscalsnap.core.contracts.snapshot import CreationSource
from fiscalsnap.core.contracts.transaction import Transaction
from fiscalsnap.core.errors import CollaboratorError
from fiscalsnap.core.ledger import InMemoryFiscalBooks, InMemoryLedger
from fiscalsnap.core.store.memory import SnapshotStore
from fiscalsnap.services.scheduler import RetentionScheduler, SchedulerLoop


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, year: int, month: int, day: int) -> None:
        self.now = datetime(year, month, day, 6, 0, tzinfo=UTC)


class Env:
    def __init__(self, ledger_cls: type[InMemoryLedger] = InMemoryLedger) -> None:
        self.clock = FakeClock(datetime(2024, 1, 1, tzinfo=UTC))
        self.ledger = ledger_cls()
        self.books = InMemoryFiscalBooks(self.ledger)
        self.books.add({"id": "b1", "bookName": "Livro Teste"})
        self.ledger.seed("b1", [{"id": "t1", "transactionValue": "10,00"}])
        self.store = SnapshotStore(self.ledger, self.books, clock=self.clock, io_timeout=None)
        self.scheduler = RetentionScheduler(self.store)
        self.books.add_status_hook(self.scheduler.status_hook)

    def schedule(self, **fields: object) -> None:
        self.scheduler.registry.upsert("b1", ScheduleConfig.model_validate(fields))

    def automatic(self) -> list[str]:
        return [s.id for s in self.store.automatic("b1")]


@pytest.fixture  # type: ignore[misc]
def env() -> Env:
    return Env()


def test_monthly_retention_prunes_the_oldest(env: Env) -> None:
    env.schedule(enabled=True, frequency="monthly", dayOfMonth=31, retentionCount=2, autoTags=["Auto", "monthly"])

    created = []
    for y, m, d in [(2024, 1, 31), (2024, 2, 29), (2024, 3, 31)]:
        env.clock.set(y, m, d)
        (report,) = env.scheduler.tick()
        snap = report.unwrap().created
        assert snap is not None
        created.append(snap.id)

    assert env.automatic() == created[1:]
    latest = env.store.get(created[2])
    assert latest.creation_source is CreationSource.SCHEDULED
    assert latest.tags == ("auto", "monthly")


def test_not_due_on_other_days_and_once_per_month(env: Env) -> None:
    env.schedule(enabled=True, frequency="monthly", dayOfMonth=15)

    env.clock.set(2024, 4, 14)
    assert env.scheduler.tick() == []

    env.clock.set(2024, 4, 15)
    assert len(env.scheduler.tick()) == 1
    env.clock.now += timedelta(hours=6)
    assert env.scheduler.tick() == []
    assert len(env.automatic()) == 1


def test_disabled_schedule_never_fires(env: Env) -> None:
    env.schedule(enabled=False, frequency="monthly", dayOfMonth=1)
    env.clock.set(2024, 5, 1)
    assert env.scheduler.tick() == []


def test_protected_automatic_snapshots_are_not_counted(env: Env) -> None:
    env.schedule(enabled=True, frequency="monthly", dayOfMonth=1, retentionCount=1)

    env.clock.set(2024, 1, 1)
    first = env.scheduler.tick()[0].unwrap().created
    assert first is not None
    env.store.toggle_protection(first.id, True)

    ids = []
    for month in (2, 3, 4):
        env.clock.set(2024, month, 1)
        snap = env.scheduler.tick()[0].unwrap().created
        assert snap is not None
        ids.append(snap.id)

    remaining = env.automatic()
    assert first.id in remaining
    assert [i for i in remaining if i != first.id] == [ids[-1]]


def test_manual_snapshots_are_ignored_by_retention(env: Env) -> None:
    env.clock.set(2024, 1, 1)
    manual = env.store.create("b1", name="manual")
    env.schedule(enabled=True, frequency="monthly", dayOfMonth=1, retentionCount=1)
    for month in (1, 2, 3):
        env.clock.set(2024, month, 1)
        env.scheduler.tick()
    assert env.store.get(manual.id).name == "manual"
    assert len(env.automatic()) == 1


def test_weekly_fires_on_configured_sunday_based_day(env: Env) -> None:
    env.schedule(enabled=True, frequency="weekly", dayOfWeek=0)

    env.clock.set(2024, 3, 2)  # Saturday
    assert env.scheduler.tick() == []
    env.clock.set(2024, 3, 3)  # Sunday
    assert len(env.scheduler.tick()) == 1
    env.clock.set(2024, 3, 10)  # next Sunday
    assert len(env.scheduler.tick()) == 1
    assert len(env.automatic()) == 2


def test_before_status_change_fires_from_hook_only(env: Env) -> None:
    env.schedule(enabled=True, frequency=Frequency.BEFORE_STATUS_CHANGE.value, retentionCount=5)
    env.clock.set(2024, 6, 30)
    assert env.scheduler.tick() == []

    env.books.change_status("b1", "Fechado")
    assert len(env.automatic()) == 1
    assert env.books.get("b1").status == "Fechado"


def test_trigger_without_matching_schedule_is_noop(env: Env) -> None:
    assert env.scheduler.trigger_before_status_change("b1") is None
    env.schedule(enabled=True, frequency="monthly")
    assert env.scheduler.trigger_before_status_change("b1") is None
    assert env.automatic() == []


def test_tick_reports_failures_per_book(env: Env) -> None:
    env.schedule(enabled=True, frequency="monthly", dayOfMonth=1)
    env.scheduler.registry.upsert("ghost", ScheduleConfig(enabled=True, day_of_month=1))
    env.clock.set(2024, 7, 1)

    results = env.scheduler.tick()

    assert sorted(r.is_ok() for r in results) == [False, True]


class FlakyLedger(InMemoryLedger):
    def __init__(self) -> None:
        super().__init__()
        self.down: set[str] = set()

    def get_transactions(self, fiscal_book_id: str) -> list[Transaction]:
        if fiscal_book_id in self.down:
            raise RuntimeError("db down")
        return super().get_transactions(fiscal_book_id)


def test_tick_continues_after_provider_exception() -> None:
    flaky = Env(FlakyLedger)
    assert isinstance(flaky.ledger, FlakyLedger)
    flaky.books.add({"id": "b0", "bookName": "Livro Instavel"})
    flaky.ledger.down.add("b0")
    flaky.scheduler.registry.upsert("b0", ScheduleConfig(enabled=True, day_of_month=1))
    flaky.schedule(enabled=True, frequency="monthly", dayOfMonth=1)
    flaky.clock.set(2024, 7, 1)

    first, second = flaky.scheduler.tick()

    error = first.unwrap_err()
    assert isinstance(error, CollaboratorError)
    assert isinstance(error.__cause__, RuntimeError)
    assert second.is_ok()
    assert len(flaky.automatic()) == 1


def test_scheduler_loop_starts_and_stops(env: Env) -> None:
    loop = SchedulerLoop(env.scheduler, interval=0.01)
    loop.start()
    time.sleep(0.05)
    assert loop.running
    loop.stop()
    assert not loop.running
