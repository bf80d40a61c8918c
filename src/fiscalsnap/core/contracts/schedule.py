"""ScheduleConfig: automatic snapshot policy for one fiscal book."""

from __future__ import annotations

import calendar
from datetime import date
from enum import Enum

from pydantic import Field, field_validator

from ..errors import ValidationError
from .base import ContractModel
from .snapshot import normalize_tags

MAX_RETENTION = 100


class Frequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    BEFORE_STATUS_CHANGE = "before-status-change"


class ScheduleConfig(ContractModel):
    """Upserted per fiscal book.

    `day_of_week` uses 0 = Sunday ... 6 = Saturday and only matters for weekly
    schedules; `day_of_month` only matters for monthly ones and is clamped to
    the last day of shorter months (see :meth:`effective_day_of_month`).
    """

    enabled: bool = False
    frequency: Frequency = Frequency.MONTHLY
    day_of_week: int | None = Field(default=0, ge=0, le=6)
    day_of_month: int | None = Field(default=1, ge=1, le=31)
    retention_count: int = Field(default=12, ge=1, le=MAX_RETENTION)
    auto_tags: list[str] = Field(default_factory=lambda: ["auto"])

    @field_validator("auto_tags")
    @classmethod
    def _clean_tags(cls, v: list[str]) -> list[str]:
        """Apply the snapshot tag rules so a bad tag fails here, not at trigger time."""
        try:
            return normalize_tags(v)
        except ValidationError as exc:
            raise ValueError(exc.message) from exc

    def effective_day_of_month(self, year: int, month: int) -> int:
        last_day = calendar.monthrange(year, month)[1]
        return min(self.day_of_month or 1, last_day)

    def is_due_day(self, today: date) -> bool:
        """Whether ``today`` is the configured trigger day (ignores history)."""
        if self.frequency is Frequency.WEEKLY:
            return sunday_based_weekday(today) == (self.day_of_week or 0)
        if self.frequency is Frequency.MONTHLY:
            return today.day == self.effective_day_of_month(today.year, today.month)
        return False


def sunday_based_weekday(day: date) -> int:
    """Weekday with 0 = Sunday, matching the schedule form."""
    return (day.weekday() + 1) % 7


__all__ = ["Frequency", "MAX_RETENTION", "ScheduleConfig", "sunday_based_weekday"]
