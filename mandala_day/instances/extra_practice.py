"""Minutes of ad-hoc (unscheduled) practice per day."""

from __future__ import annotations

import asyncio
from datetime import timedelta

from loguru import logger

from mandala_day.core.clock import Clock, format_day, local_today
from mandala_day.core.errors import PersistenceError
from mandala_day.storage.base import KeyValueStore, StorageKeys, read_json, write_json


class ExtraPracticeLedger:
    """Accumulates extra minutes under ``extra_practice_minutes``.

    Minutes are only ever added to a day. Days older than the retention
    window are dropped on each write.
    """

    def __init__(self, store: KeyValueStore, clock: Clock, retention_days: int = 30):
        self._store = store
        self._clock = clock
        self._retention_days = retention_days
        self._lock = asyncio.Lock()

    async def _read(self) -> dict[str, int]:
        data = await read_json(self._store, StorageKeys.EXTRA_PRACTICE_MINUTES)
        if not isinstance(data, dict):
            return {}
        return {day: int(minutes) for day, minutes in data.items()}

    async def add_minutes(self, day: str, minutes: int) -> int | None:
        """Add minutes to a day.

        Returns:
            The day's new total, or None if the write failed (logged)
        """
        if minutes <= 0:
            logger.warning(f"Ignoring non-positive extra practice minutes: {minutes}")
            return None

        cutoff = format_day(local_today(self._clock) - timedelta(days=self._retention_days))
        async with self._lock:
            try:
                totals = await self._read()
                totals[day] = totals.get(day, 0) + minutes
                totals = {key: value for key, value in totals.items() if key >= cutoff}
                await write_json(self._store, StorageKeys.EXTRA_PRACTICE_MINUTES, totals)
            except PersistenceError as e:
                logger.error(f"Error adding extra practice minutes: {e}")
                return None
        return totals.get(day, 0)

    async def get_minutes(self, day: str) -> int:
        async with self._lock:
            try:
                totals = await self._read()
            except PersistenceError as e:
                logger.error(f"Error getting extra practice minutes: {e}")
                return 0
        return totals.get(day, 0)

    async def all_minutes(self) -> dict[str, int]:
        async with self._lock:
            try:
                return await self._read()
            except PersistenceError as e:
                logger.error(f"Error getting extra practice minutes: {e}")
                return {}
