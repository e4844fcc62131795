"""Per-day practice summaries for the history view."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from mandala_day.sessions.templates import FULL_MANDALA_COUNT
from mandala_day.sessions.types import DailySessionInstance, SessionStatus

DEFAULT_HISTORY_DAYS = 14


@dataclass(frozen=True)
class DaySummary:
    """Completion summary of one calendar day.

    Attributes:
        date: Day key "YYYY-MM-DD"
        completed_count: Instances completed that day
        total_count: Instances generated that day (0 if the day was never generated)
        extra_minutes: Ad-hoc practice minutes recorded that day
        instances: The day's instances, canonical order
    """

    date: str
    completed_count: int
    total_count: int
    extra_minutes: int = 0
    instances: list[DailySessionInstance] = field(default_factory=list)

    @property
    def is_full_mandala(self) -> bool:
        """All six sessions generated and completed."""
        return self.completed_count == FULL_MANDALA_COUNT and self.total_count == FULL_MANDALA_COUNT


def summarize_day(day: str, instances: list[DailySessionInstance] | None, extra_minutes: int = 0) -> DaySummary:
    instances = instances or []
    return DaySummary(
        date=day,
        completed_count=sum(1 for instance in instances if instance.status == SessionStatus.COMPLETED),
        total_count=len(instances),
        extra_minutes=extra_minutes,
        instances=list(instances),
    )


def history_days(today: date, days: int = DEFAULT_HISTORY_DAYS) -> list[str]:
    """Day keys from today backwards, newest first."""
    return [(today - timedelta(days=offset)).isoformat() for offset in range(days)]


def is_mandala_complete(instances: list[DailySessionInstance]) -> bool:
    """Whether every instance of a (non-empty) day is completed."""
    return bool(instances) and all(instance.status == SessionStatus.COMPLETED for instance in instances)
