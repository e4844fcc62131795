"""Instance generator.

Derives a calendar day's DailySessionInstance records from the compiled-in
templates and the user's schedule. Generation is pure; persisting the result
is the Instance Store's job.
"""

from __future__ import annotations

from datetime import date, datetime, time, tzinfo

from loguru import logger
from pydantic import ValidationError

from mandala_day.schedule.repository import merge_user_schedule
from mandala_day.sessions.templates import DEFAULT_SESSIONS
from mandala_day.sessions.types import (
    AppSettings,
    DailySessionInstance,
    SessionStatus,
    UserSchedule,
    make_instance_id,
    sort_instances,
)

_WEEKEND_WEEKDAYS = {5, 6}


def parse_day(day: str) -> date:
    """Parse a "YYYY-MM-DD" day key."""
    return date.fromisoformat(day)


def parse_time_of_day(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def scheduled_instant(day: str, time_of_day: str, tz: tzinfo) -> datetime:
    """Combine a day key and "HH:mm" into an aware instant in ``tz``.

    The calendar day comes from the day key, never from the current instant,
    so a day is always generated for the date it is filed under.
    """
    return datetime.combine(parse_day(day), parse_time_of_day(time_of_day), tzinfo=tz)


def resolve_schedule_for_date(day: str, schedule: UserSchedule, app_settings: AppSettings | None) -> UserSchedule:
    """Apply the weekend overlay when it is enabled and ``day`` is Saturday or Sunday."""
    if app_settings is None or not app_settings.weekend_schedule_enabled or not app_settings.weekend_schedule:
        return schedule
    if parse_day(day).weekday() not in _WEEKEND_WEEKDAYS:
        return schedule
    try:
        return merge_user_schedule(schedule, app_settings.weekend_schedule)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid weekend schedule for {day}: {e}")
        return schedule


def generate_daily_instances(day: str, schedule: UserSchedule, tz: tzinfo) -> list[DailySessionInstance]:
    """Create the instances of one day.

    One UPCOMING instance per enabled template, at the user's time for that
    template (or the template default), sorted by scheduled time.

    Args:
        day: Calendar day "YYYY-MM-DD"
        schedule: Effective schedule for the day
        tz: Zone the times of day are expressed in

    Returns:
        Instances sorted by scheduled_at ascending
    """
    instances: list[DailySessionInstance] = []
    for template in DEFAULT_SESSIONS:
        if not schedule.enabled_sessions.get(template.id, False):
            continue
        time_of_day = schedule.session_times.get(template.id) or template.default_time
        instances.append(
            DailySessionInstance(
                id=make_instance_id(day, template.id),
                date=day,
                template_id=template.id,
                scheduled_at=scheduled_instant(day, time_of_day, tz),
                status=SessionStatus.UPCOMING,
                snooze_count=0,
            )
        )

    logger.debug(f"[GENERATOR] Generated {len(instances)} instances for {day}")
    return sort_instances(instances)


def reconcile_day(
    existing: list[DailySessionInstance] | None,
    fresh: list[DailySessionInstance],
) -> list[DailySessionInstance]:
    """Merge a freshly generated day over the persisted one after a schedule change.

    The id set follows ``fresh`` (templates enabled now). An instance that
    already left the plain schedule (terminal, MISSED, started or snoozed)
    keeps its persisted state, so its MISS event is never logged again. An
    untouched one takes the fresh scheduled time and restarts at UPCOMING so
    the status engine recomputes it.
    """
    if not existing:
        return fresh
    previous = {instance.id: instance for instance in existing}
    merged: list[DailySessionInstance] = []
    for instance in fresh:
        old = previous.get(instance.id)
        if old is not None and _keeps_persisted_state(old):
            merged.append(old)
        else:
            merged.append(instance)
    return sort_instances(merged)


def _keeps_persisted_state(instance: DailySessionInstance) -> bool:
    return (
        instance.status.is_terminal
        or instance.status == SessionStatus.MISSED
        or instance.started_at is not None
        or instance.snooze_count > 0
    )
