"""Domain records for the daily session cycle.

All records are pydantic models whose JSON form uses the camelCase keys of the
persisted layout (``sessionTimes``, ``scheduledAt``, ``snoozeCount``...).
Python code always uses the snake_case attribute names.
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

DEFAULT_SNOOZE_OPTIONS_MIN = [5, 10, 15]
DEFAULT_GRACE_WINDOW_MIN = 30


def validate_hhmm(value: str) -> str:
    """Validate a "HH:mm" time-of-day string.

    Raises:
        ValueError: If the value is not a 24-hour "HH:mm" string
    """
    if not _HHMM_PATTERN.match(value):
        raise ValueError(f"Expected time of day as 'HH:mm', got '{value}'")
    return value


class SessionStatus(StrEnum):
    """Lifecycle status of a daily session instance."""

    UPCOMING = "UPCOMING"
    DUE = "DUE"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    MISSED = "MISSED"

    @property
    def is_terminal(self) -> bool:
        return self in {SessionStatus.COMPLETED, SessionStatus.SKIPPED}


class PracticeType(StrEnum):
    """Contemplative category of a session template."""

    SHAMATHA = "SHAMATHA"
    BODY_AWARENESS = "BODY_AWARENESS"
    COMPASSION = "COMPASSION"
    DIRECT_AWARENESS = "DIRECT_AWARENESS"
    MOVEMENT = "MOVEMENT"
    DISSOLUTION = "DISSOLUTION"


class EventType(StrEnum):
    """Event log entry types."""

    START = "START"
    COMPLETE = "COMPLETE"
    SKIP = "SKIP"
    SNOOZE = "SNOOZE"
    MISS = "MISS"


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_json_dict(self) -> dict[str, Any]:
        """Dump to the persisted (camelCase, JSON-safe) representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SessionTemplate(_Record):
    """Canonical definition of one of the six daily practices.

    Attributes:
        id: Stable template id (e.g. "session1_waking_view")
        order: Position in the daily cycle (1-6)
        title: Display title, also used as reminder title
        practice_type: Contemplative category
        default_time: Default time of day ("HH:mm")
        duration_sec: Practice length in seconds
        short_prompt: One-line prompt, also used as reminder body
        dedication: Closing dedication text
        tags: Free-form tags
    """

    model_config = ConfigDict(frozen=True)

    id: str
    order: int = Field(ge=1, le=6)
    title: str
    practice_type: PracticeType
    default_time: str
    duration_sec: int = Field(gt=0)
    short_prompt: str
    dedication: str
    tags: tuple[str, ...] = ()

    @field_validator("default_time")
    @classmethod
    def _check_default_time(cls, value: str) -> str:
        return validate_hhmm(value)


class QuietHours(_Record):
    """Time-of-day window during which reminders are suppressed."""

    start: str = "22:00"
    end: str = "07:00"
    enabled: bool = False

    @field_validator("start", "end")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        return validate_hhmm(value)


class UserSchedule(_Record):
    """User's per-session time-of-day preferences.

    Attributes:
        session_times: template id -> "HH:mm"
        enabled_sessions: template id -> enabled flag
        quiet_hours: reminder suppression window
        snooze_options_min: snooze offsets offered to the user, in minutes
        grace_window_min: minutes after the scheduled time an instance stays DUE
    """

    session_times: dict[str, str] = Field(default_factory=dict)
    enabled_sessions: dict[str, bool] = Field(default_factory=dict)
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    snooze_options_min: list[int] = Field(default_factory=lambda: list(DEFAULT_SNOOZE_OPTIONS_MIN))
    grace_window_min: int = Field(default=DEFAULT_GRACE_WINDOW_MIN, ge=0)

    @field_validator("session_times")
    @classmethod
    def _check_session_times(cls, value: dict[str, str]) -> dict[str, str]:
        for time_of_day in value.values():
            validate_hhmm(time_of_day)
        return value

    @field_validator("snooze_options_min")
    @classmethod
    def _check_snooze_options(cls, value: list[int]) -> list[int]:
        if any(minutes <= 0 for minutes in value):
            raise ValueError("Snooze options must be positive minute offsets")
        return value


class AppSettings(_Record):
    """Installation-wide application flags."""

    has_completed_onboarding: bool = False
    notifications_enabled: bool = True
    weekend_schedule_enabled: bool = False
    # Partial UserSchedule overlay applied on Saturdays and Sundays
    weekend_schedule: dict[str, Any] | None = None


class DailySessionInstance(_Record):
    """One day's concrete, stateful occurrence of a session template.

    ``date`` is authoritative for which day the instance belongs to. It is
    never re-derived from ``scheduled_at``, which may move with a snooze.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    date: str
    template_id: str
    scheduled_at: datetime
    status: SessionStatus = SessionStatus.UPCOMING
    started_at: datetime | None = None
    ended_at: datetime | None = None
    snooze_count: int = Field(default=0, ge=0)

    @field_validator("scheduled_at", "started_at", "ended_at")
    @classmethod
    def _require_aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            raise ValueError("Instants must be timezone-aware")
        return value


class EventLogEntry(_Record):
    """Append-only record of a lifecycle event."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    event_type: EventType
    instance_id: str
    metadata: dict[str, Any] | None = None


def make_instance_id(day: str, template_id: str) -> str:
    """Build the canonical "{date}_{templateId}" instance id."""
    return f"{day}_{template_id}"


def sort_instances(instances: list[DailySessionInstance]) -> list[DailySessionInstance]:
    """Return instances in canonical order (scheduled_at ascending, stable)."""
    return sorted(instances, key=lambda instance: instance.scheduled_at)
