"""Schedule repository.

Loads and saves the user's per-session time-of-day preferences, quiet hours
and application flags. Stored payloads are merged over defaults so records
written by older versions keep loading. Persistence failures are logged and
the last known value (or the default) is used instead.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import ValidationError

from mandala_day.core.errors import PersistenceError
from mandala_day.sessions.templates import DEFAULT_SCHEDULE_TIMES, DEFAULT_SESSIONS
from mandala_day.sessions.types import AppSettings, UserSchedule
from mandala_day.storage.base import KeyValueStore, StorageKeys, read_json, write_json


def default_user_schedule() -> UserSchedule:
    """Every template enabled at its default time, quiet hours off."""
    return UserSchedule(
        session_times=dict(DEFAULT_SCHEDULE_TIMES),
        enabled_sessions={template.id: True for template in DEFAULT_SESSIONS},
    )


def default_app_settings() -> AppSettings:
    return AppSettings()


def merge_user_schedule(base: UserSchedule, changes: dict[str, Any]) -> UserSchedule:
    """Overlay a partial schedule on a full one.

    ``session_times`` and ``enabled_sessions`` are merged per template id;
    every other field is replaced. Keys may use either snake_case or the
    persisted camelCase names.

    Raises:
        ValidationError: If the merged schedule is invalid
    """
    merged = base.model_dump()
    for raw_key, value in changes.items():
        key = _snake_key(raw_key, UserSchedule)
        if key in {"session_times", "enabled_sessions"} and isinstance(value, dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return UserSchedule.model_validate(merged)


def _snake_key(key: str, model: type[UserSchedule] | type[AppSettings]) -> str:
    for name, field in model.model_fields.items():
        if key in {name, field.alias}:
            return name
    return key


class ScheduleRepository:
    """Reads and writes ``user_schedule`` and ``app_settings``."""

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._schedule: UserSchedule | None = None
        self._app_settings: AppSettings | None = None

    async def get_user_schedule(self) -> UserSchedule:
        fallback = self._schedule or default_user_schedule()
        try:
            data = await read_json(self._store, StorageKeys.USER_SCHEDULE)
        except PersistenceError as e:
            logger.error(f"Error loading user schedule, using last known value: {e}")
            return fallback

        if data is None:
            schedule = default_user_schedule()
        else:
            try:
                schedule = UserSchedule.model_validate({**default_user_schedule().to_json_dict(), **data})
            except (ValidationError, TypeError) as e:
                logger.error(f"Stored user schedule is invalid, using last known value: {e}")
                return fallback

        self._schedule = schedule
        return schedule

    async def save_user_schedule(self, schedule: UserSchedule) -> bool:
        """Persist the schedule.

        Returns:
            True if the write succeeded. The in-memory value is updated either way.
        """
        self._schedule = schedule
        try:
            await write_json(self._store, StorageKeys.USER_SCHEDULE, schedule.to_json_dict())
        except PersistenceError as e:
            logger.error(f"Error saving user schedule: {e}")
            return False
        return True

    async def update_user_schedule(self, **changes: Any) -> UserSchedule:
        """Merge changes into the current schedule and persist the result.

        Raises:
            ValidationError: If the changes produce an invalid schedule
        """
        current = await self.get_user_schedule()
        updated = merge_user_schedule(current, changes)
        await self.save_user_schedule(updated)
        logger.info(f"User schedule updated: fields={sorted(changes)}")
        return updated

    async def get_app_settings(self) -> AppSettings:
        fallback = self._app_settings or default_app_settings()
        try:
            data = await read_json(self._store, StorageKeys.APP_SETTINGS)
        except PersistenceError as e:
            logger.error(f"Error loading app settings, using last known value: {e}")
            return fallback

        if data is None:
            app_settings = default_app_settings()
        else:
            try:
                app_settings = AppSettings.model_validate({**default_app_settings().to_json_dict(), **data})
            except (ValidationError, TypeError) as e:
                logger.error(f"Stored app settings are invalid, using last known value: {e}")
                return fallback

        self._app_settings = app_settings
        return app_settings

    async def save_app_settings(self, app_settings: AppSettings) -> bool:
        self._app_settings = app_settings
        try:
            await write_json(self._store, StorageKeys.APP_SETTINGS, app_settings.to_json_dict())
        except PersistenceError as e:
            logger.error(f"Error saving app settings: {e}")
            return False
        return True

    async def update_app_settings(self, **changes: Any) -> AppSettings:
        current = await self.get_app_settings()
        merged = current.model_dump()
        merged.update({_snake_key(key, AppSettings): value for key, value in changes.items()})
        updated = AppSettings.model_validate(merged)
        await self.save_app_settings(updated)
        logger.info(f"App settings updated: fields={sorted(changes)}")
        return updated
