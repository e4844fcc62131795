"""Append-only lifecycle event log, capped to the most recent entries."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any

from loguru import logger
from pydantic import ValidationError

from mandala_day.core.clock import Clock
from mandala_day.core.errors import PersistenceError
from mandala_day.sessions.types import EventLogEntry, EventType
from mandala_day.storage.base import KeyValueStore, StorageKeys, read_json, write_json

DEFAULT_EVENT_LOG_CAP = 1000


class EventLog:
    """Event log persisted under ``event_log``.

    Entries are never mutated. When the log grows past ``cap`` the oldest
    entries are trimmed.
    """

    def __init__(self, store: KeyValueStore, clock: Clock, cap: int = DEFAULT_EVENT_LOG_CAP):
        self._store = store
        self._clock = clock
        self._cap = cap
        self._lock = asyncio.Lock()

    async def _read(self) -> list[EventLogEntry]:
        data = await read_json(self._store, StorageKeys.EVENT_LOG)
        if not data:
            return []
        try:
            return [EventLogEntry.model_validate(item) for item in data]
        except (ValidationError, TypeError) as e:
            raise PersistenceError(StorageKeys.EVENT_LOG, "get", e) from e

    def _new_id(self) -> str:
        millis = int(self._clock.now().timestamp() * 1000)
        return f"{millis}_{uuid.uuid4().hex[:9]}"

    async def append(
        self,
        event_type: EventType,
        instance_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> EventLogEntry | None:
        """Append one entry.

        Returns:
            The stored entry, or None if persisting it failed (logged)
        """
        entry = EventLogEntry(
            id=self._new_id(),
            timestamp=self._clock.now(),
            event_type=event_type,
            instance_id=instance_id,
            metadata=metadata,
        )
        async with self._lock:
            try:
                entries = await self._read()
                entries.append(entry)
                if len(entries) > self._cap:
                    entries = entries[-self._cap :]
                await write_json(self._store, StorageKeys.EVENT_LOG, [item.to_json_dict() for item in entries])
            except PersistenceError as e:
                logger.error(f"Error logging {event_type} event for {instance_id}: {e}")
                return None

        logger.debug(f"[EVENT_LOG] {event_type} instance_id={instance_id}")
        return entry

    async def recent(self, limit: int = 100) -> list[EventLogEntry]:
        """Most recent entries, oldest first."""
        async with self._lock:
            try:
                entries = await self._read()
            except PersistenceError as e:
                logger.error(f"Error reading event log: {e}")
                return []
        return entries[-limit:] if limit > 0 else []
