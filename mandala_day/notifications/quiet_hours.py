"""Quiet-hours containment on minutes since midnight."""

from __future__ import annotations

from datetime import datetime, tzinfo

from mandala_day.sessions.types import QuietHours


def minutes_since_midnight(value: str) -> int:
    """Convert "HH:mm" to minutes since midnight."""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def is_within_window(minute_of_day: int, start: int, end: int) -> bool:
    """Inclusive window containment.

    When start > end the window wraps midnight (e.g. 22:00-07:00) and contains
    ``t >= start or t <= end``; otherwise it contains ``start <= t <= end``.
    """
    if start > end:
        return minute_of_day >= start or minute_of_day <= end
    return start <= minute_of_day <= end


def is_in_quiet_hours(instant: datetime, quiet_hours: QuietHours, tz: tzinfo) -> bool:
    """Whether an instant's local time of day falls inside enabled quiet hours."""
    if not quiet_hours.enabled:
        return False
    local = instant.astimezone(tz)
    return is_within_window(
        local.hour * 60 + local.minute,
        minutes_since_midnight(quiet_hours.start),
        minutes_since_midnight(quiet_hours.end),
    )
