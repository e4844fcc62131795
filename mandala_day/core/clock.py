"""Wall clock abstraction.

Every time-dependent decision in the core reads "now" from a Clock so that
status computation, planning and day rollover are pure given a clock.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Source of the current instant."""

    @property
    def tz(self) -> tzinfo: ...

    def now(self) -> datetime: ...


class SystemClock:
    """Clock backed by the host's wall clock, expressed in a fixed zone."""

    def __init__(self, tz: tzinfo | str = "UTC"):
        self._tz = ZoneInfo(tz) if isinstance(tz, str) else tz

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


class ManualClock:
    """Clock that only moves when told to. Used by simulations and tests."""

    def __init__(self, start: datetime):
        if start.tzinfo is None:
            raise ValueError("ManualClock requires an aware datetime")
        self._now = start
        self._tz = start.tzinfo

    @property
    def tz(self) -> tzinfo:
        return self._tz

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=self._tz)
        self._now = value

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by a timedelta built from kwargs."""
        self._now = self._now + timedelta(**kwargs)
        return self._now


def local_today(clock: Clock) -> date:
    """Calendar date of the clock's current instant in the clock's zone."""
    return clock.now().astimezone(clock.tz).date()


def format_day(day: date) -> str:
    """Format a date as the canonical "YYYY-MM-DD" day key."""
    return day.isoformat()
