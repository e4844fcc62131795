"""Key-value store contract and persisted key names.

The store is the only durable collaborator of the core: string keys, string
(JSON) values, asynchronous get/set/remove and no transactions. Backends wrap
their native failures in PersistenceError.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any, Protocol

from mandala_day.core.errors import PersistenceError


class StorageKeys(StrEnum):
    """Persisted record names."""

    USER_SCHEDULE = "user_schedule"
    APP_SETTINGS = "app_settings"
    DAILY_INSTANCES = "daily_instances"
    EVENT_LOG = "event_log"
    EXTRA_PRACTICE_MINUTES = "extra_practice_minutes"


class KeyValueStore(Protocol):
    """Durable, asynchronous string-keyed storage."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def remove_many(self, keys: list[str]) -> None: ...

    async def close(self) -> None: ...


async def read_json(store: KeyValueStore, key: str) -> Any | None:
    """Read and decode a JSON record.

    Args:
        store: Key-value store
        key: Record key

    Returns:
        Decoded JSON value, or None if the key is absent

    Raises:
        PersistenceError: If the backend fails or the stored value is not valid JSON
    """
    raw = await store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise PersistenceError(key, "get", e) from e


async def write_json(store: KeyValueStore, key: str, value: Any) -> None:
    """Encode a value as JSON and write it.

    Raises:
        PersistenceError: If the backend fails
    """
    await store.set(key, json.dumps(value, separators=(",", ":")))
