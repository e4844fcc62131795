"""Next-due selection: which session the primary call-to-action points at."""

from __future__ import annotations

from datetime import datetime, timedelta

from mandala_day.sessions.types import DailySessionInstance, SessionStatus, sort_instances

DEFAULT_MISSED_SURFACE_MINUTES = 60

_ACTIONABLE = {SessionStatus.DUE, SessionStatus.UPCOMING}


def select_next_due(
    instances: list[DailySessionInstance],
    now: datetime,
    missed_surface_minutes: int = DEFAULT_MISSED_SURFACE_MINUTES,
) -> DailySessionInstance | None:
    """Pick the instance to offer next. Pure.

    Policy, in order:
    1. The earliest DUE or UPCOMING instance in canonical order.
    2. Otherwise a MISSED instance scheduled within the last
       ``missed_surface_minutes``, so a just-missed session is still offered.
    3. Otherwise None.
    """
    ordered = sort_instances(instances)
    for instance in ordered:
        if instance.status in _ACTIONABLE:
            return instance

    window = timedelta(minutes=missed_surface_minutes)
    for instance in ordered:
        if instance.status == SessionStatus.MISSED and now - instance.scheduled_at < window:
            return instance
    return None
